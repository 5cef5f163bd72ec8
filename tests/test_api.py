import unittest

from fastapi.testclient import TestClient

from studyplanner.api import app


class TestAPI(unittest.TestCase):
    def setUp(self) -> None:
        self.client = TestClient(app)

    def test_get_welcome(self) -> None:
        resp = self.client.get("/api")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json(), {"message": "Welcome to Study Planner API"})

    def test_post_not_allowed(self) -> None:
        resp = self.client.post("/api", json={"anything": 1})
        self.assertEqual(resp.status_code, 405)
        self.assertEqual(resp.json(), {"error": "Method not allowed"})


if __name__ == "__main__":
    unittest.main()
