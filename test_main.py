#!/usr/bin/env python3
"""
test_main.py
============
Checks the ``ROADREPORT_*`` environment parsing of :mod:`main`.
"""

import logging
import unittest

import config
from main import settings_from_env


class SettingsFromEnvTests(unittest.TestCase):
    def test_defaults(self):
        settings = settings_from_env({})
        self.assertEqual(settings["seed"], config.DEFAULT_SEED)
        self.assertEqual(settings["horizon"], config.DEFAULT_HORIZON_S)
        self.assertFalse(settings["view"])
        self.assertFalse(settings["car_debug"])
        self.assertEqual(settings["log_level"], logging.INFO)

    def test_overrides(self):
        settings = settings_from_env({
            "ROADREPORT_SEED": "0x10",
            "ROADREPORT_HORIZON": "120.5",
            "ROADREPORT_VIEW": "yes",
            "ROADREPORT_REPORT_CSV": "out.csv",
            "ROADREPORT_LOG_LEVEL": "debug",
            "ROADREPORT_CAR_DEBUG": "1",
        })
        self.assertEqual(settings["seed"], 16)
        self.assertEqual(settings["horizon"], 120.5)
        self.assertTrue(settings["view"])
        self.assertEqual(settings["report_csv"], "out.csv")
        self.assertEqual(settings["log_level"], logging.DEBUG)
        self.assertTrue(settings["car_debug"])

    def test_bad_values(self):
        for env in (
            {"ROADREPORT_SEED": "abc"},
            {"ROADREPORT_HORIZON": "soon"},
            {"ROADREPORT_HORIZON": "0"},
            {"ROADREPORT_LOG_LEVEL": "LOUD"},
        ):
            with self.assertRaises(ValueError):
                settings_from_env(env)


if __name__ == "__main__":
    unittest.main()
