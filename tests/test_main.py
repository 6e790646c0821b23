import contextlib
import io
import json
import os
import shutil
import tempfile
import unittest

import numpy
import pandas

import base
from betheansatz.main import main


class MainTests(unittest.TestCase):
    def setUp(self):
        self.directory = tempfile.mkdtemp()
        self.addCleanup(shutil.rmtree, self.directory)
        self.input = self.write_input()

    def write_input(self, **overrides):
        values = {
            "U": base.U,
            "temperature_begin": 0.1, "temperature_step": 0.2, "temperature_total": 4,
            "mu_begin": -1.5, "mu_step": 0.5, "mu_total": 5,
            "mesh_k_total": base.MESH_K, "mesh_lambda_total": base.MESH_LAMBDA,
        }
        values.update(overrides)
        path = os.path.join(self.directory, 'input.json')
        with open(path, 'w') as f:
            json.dump(values, f)
        return path

    def run_main(self, *argv):
        out, err = io.StringIO(), io.StringIO()
        with contextlib.redirect_stdout(out), contextlib.redirect_stderr(err):
            status = main(list(argv))
        return status, out.getvalue(), err.getvalue()

    def test_matrix_on_stdout(self):
        status, out, _ = self.run_main('-f', self.input, '-t', '2')
        self.assertEqual(status, 0)
        rows = [line.split() for line in out.splitlines()]
        self.assertEqual(len(rows), 4)
        self.assertTrue(all(len(row) == 5 for row in rows))
        omega = numpy.array(rows, dtype=float)
        self.assertTrue(numpy.all(numpy.isfinite(omega)))
        self.assertTrue(numpy.all(numpy.diff(omega, axis=1) < 0.0))

    def test_precision(self):
        _, full, _ = self.run_main('-f', self.input, '-p', '15')
        _, short, _ = self.run_main('-f', self.input, '-p', '3')
        full = numpy.array([line.split() for line in full.splitlines()], dtype=float)
        short_tokens = [line.split() for line in short.splitlines()]
        numpy.testing.assert_allclose(numpy.array(short_tokens, dtype=float), full, rtol=5e-3)

    def test_bad_precision(self):
        status, _, err = self.run_main('-f', self.input, '-p', '0')
        self.assertEqual(status, 2)
        self.assertIn("precision", err)

    def test_configuration_error(self):
        path = self.write_input(U=-4.0)
        status, out, err = self.run_main('-f', path)
        self.assertEqual(status, 2)
        self.assertEqual(out, '')
        self.assertIn("U must be positive", err)

    def test_missing_input_file(self):
        status, _, _ = self.run_main('-f', os.path.join(self.directory, 'absent.json'))
        self.assertEqual(status, 2)

    def test_bad_thread_override(self):
        status, _, _ = self.run_main('-f', self.input, '-t', '0')
        self.assertEqual(status, 2)

    def test_numeric_failure(self):
        path = self.write_input(max_iterations=1)
        status, out, err = self.run_main('-f', path)
        self.assertEqual(status, 1)
        self.assertEqual(out, '')
        self.assertIn("run aborted", err)

    def test_missing_arguments(self):
        with self.assertRaises(SystemExit):
            self.run_main()

    def test_saved_outputs(self):
        csv = os.path.join(self.directory, 'data', 'omega.csv')
        txt = os.path.join(self.directory, 'data', 'omega.txt')
        png = os.path.join(self.directory, 'figs', 'omega.png')
        status, _, _ = self.run_main('-f', self.input, '--csv', csv, '--txt', txt, '--plot', png)
        self.assertEqual(status, 0)

        df = pandas.read_csv(csv)
        self.assertEqual(list(df.columns), ['T', 'mu', 'omega'])
        self.assertEqual(len(df), 20)
        numpy.testing.assert_allclose(df['T'].unique(), [0.1, 0.3, 0.5, 0.7])
        numpy.testing.assert_allclose(df['mu'].unique(), [-1.5, -1.0, -0.5, 0.0, 0.5])
        self.assertTrue(numpy.all(numpy.isfinite(df['omega'])))

        with open(txt) as f:
            lines = f.read().splitlines()
        self.assertTrue(lines[0].startswith("1D Hubbard"))
        self.assertEqual(len(lines), 3 + 1 + 4)

        self.assertGreater(os.path.getsize(png), 0)

    def test_worker_logs(self):
        root = os.path.join(self.directory, 'logs', 'omega')
        os.makedirs(os.path.dirname(root))
        path = self.write_input(log_root=root, threads=2)
        status, _, _ = self.run_main('-f', path)
        self.assertEqual(status, 0)
        self.assertEqual(sorted(os.listdir(os.path.dirname(root))), ['omega0.txt', 'omega1.txt'])

    def test_verbose(self):
        status, out, _ = self.run_main('-f', self.input, '-v')
        self.assertEqual(status, 0)
        self.assertIn("Convergence reached", out)
        self.assertIn("Total Elapsed Time", out)


if __name__ == '__main__':
    unittest.main()
