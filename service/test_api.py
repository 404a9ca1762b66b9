"""
Tests for the simulation HTTP service.
"""

import unittest

from fastapi.testclient import TestClient

from service.api import app, build_policy


class BuildPolicyTests(unittest.TestCase):
    def test_overrides_are_applied(self):
        policy = build_policy({"alert_miss_limit": 2.0, "grid_km": 0.25})
        self.assertEqual(policy.alert_miss_limit, 2)
        self.assertIsInstance(policy.alert_miss_limit, int)
        self.assertEqual(policy.grid_km, 0.25)

    def test_rejects_bad_overrides(self):
        with self.assertRaises(ValueError):
            build_policy({"warp_speed": 1.0})
        with self.assertRaises(ValueError):
            build_policy({"msg_receive_max": 2.5})
        with self.assertRaises(ValueError):
            build_policy({"msg_expire_interval": -1.0})


class ApiTests(unittest.TestCase):
    def setUp(self):
        self.client = TestClient(app)

    def test_policy_defaults(self):
        response = self.client.get("/policy")
        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(body["grid_km"], 0.5)
        self.assertEqual(body["alert_resend_interval"], 30.0)

    def test_simulate(self):
        response = self.client.post("/simulate", json={"seed": 7, "horizon": 90})
        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(body["end_time"], 90.0)
        self.assertEqual(body["metrics"]["cars_spawned"], body["live_cars"])
        self.assertEqual(body["metrics"]["alerts_generated"], 1)

        again = self.client.post("/simulate", json={"seed": 7, "horizon": 90})
        self.assertEqual(again.json()["metrics"], body["metrics"])

    def test_bad_override_is_rejected(self):
        response = self.client.post(
            "/simulate", json={"horizon": 10, "overrides": {"warp_speed": 9}},
        )
        self.assertEqual(response.status_code, 422)
        self.assertIn("warp_speed", response.json()["detail"])

    def test_bad_horizon_is_rejected(self):
        for horizon in (0, -5, 100000):
            response = self.client.post("/simulate", json={"horizon": horizon})
            self.assertEqual(response.status_code, 400)


if __name__ == "__main__":
    unittest.main()
