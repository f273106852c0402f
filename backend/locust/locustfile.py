"""
Locust Load Test Suite

Run scenarios:
  locust -f locustfile.py --tags approval     # Approval race on one seat block
  locust -f locustfile.py --tags throughput   # Showtime list and seat map reads
  locust -f locustfile.py --tags edge         # Bad input
  locust -f locustfile.py                     # All tests

The approval scenario needs an admin account; start the API with
ADMIN_PASSWORD set and pass the same credentials through
LOCUST_ADMIN_USERNAME / LOCUST_ADMIN_PASSWORD.
"""

import os
import random
import string
from collections import deque
from datetime import datetime, timezone, timedelta

from locust import HttpUser, task, between, tag, events

ADMIN_USERNAME = os.environ.get("LOCUST_ADMIN_USERNAME", "admin")
ADMIN_PASSWORD = os.environ.get("LOCUST_ADMIN_PASSWORD", "admin123")
CONTESTED_SEATS = ["A1", "A2", "A3", "A4", "A5"]
PROOF_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 256

# Shared state
SHOWTIME = {}
SHOWTIME_IDS = []
AWAITING_REVIEW = deque()


def random_username():
    return "u_" + "".join(random.choices(string.ascii_lowercase, k=8))


@events.test_start.add_listener
def on_test_start(environment, **kwargs):
    print("\n" + "=" * 60)
    print("Approval race: customers overlap on seats", ", ".join(CONTESTED_SEATS))
    print("Afterwards each seat must belong to at most one confirmed booking:")
    print("  GET /api/v1/bookings/occupied-seats?include_pending_verification=false")
    print("=" * 60)


def _admin_headers(client):
    resp = client.post("/api/v1/auth/login", json={"username": ADMIN_USERNAME, "password": ADMIN_PASSWORD})
    if resp.status_code != 200:
        return {}
    return {"Authorization": f"Bearer {resp.json()['access_token']}"}


class AdminUser(HttpUser):
    """
    TEST 1a: Admins approving overlapping payments at the same time.

    Run: locust -f locustfile.py --tags approval -u 60 -r 30 --run-time 60s

    200 on the first approval of a seat, 409 seat_conflict for the rest.
    """
    wait_time = between(0, 0.2)
    weight = 1

    def on_start(self):
        self.headers = _admin_headers(self.client)
        if self.headers and not SHOWTIME:
            future = (datetime.now(timezone.utc) + timedelta(days=7)).isoformat()
            resp = self.client.post("/api/v1/admin/showtimes", json={
                "movie_title": "Load Test Premiere",
                "studio": "Studio 1",
                "starts_at": future,
                "ticket_price": "50000",
                "seat_capacity": 100,
            }, headers=self.headers)
            if resp.status_code == 201:
                SHOWTIME.update(resp.json())
                print(f"\n✓ Created showtime {SHOWTIME['id']}\n")

    @tag("approval")
    @task
    def approve_next(self):
        if not self.headers or not AWAITING_REVIEW:
            return
        reference, code = AWAITING_REVIEW.popleft()
        with self.client.post(
            f"/api/v1/admin/bookings/{reference}/verify",
            json={"action": "approve", "verification_code": code},
            headers=self.headers,
            name="/api/v1/admin/bookings/{ref}/verify",
            catch_response=True,
        ) as resp:
            if resp.status_code in (200, 409):
                resp.success()  # 409: seat already confirmed for someone else
            else:
                resp.failure(f"Unexpected: {resp.status_code}")


class CustomerUser(HttpUser):
    """
    TEST 1b: Customers booking and paying for overlapping seats.
    """
    wait_time = between(0, 0.2)
    weight = 5

    @tag("approval")
    @task
    def book_and_pay(self):
        if not SHOWTIME:
            return
        seats = random.sample(CONTESTED_SEATS, k=random.randint(1, 2))
        resp = self.client.post("/api/v1/bookings/", json={
            "showtime_id": SHOWTIME["id"],
            "movie_title": SHOWTIME["movie_title"],
            "customer_name": random_username(),
            "customer_email": f"{random_username()}@load.test",
            "seat_numbers": seats,
            "total_amount": str(50000 * len(seats)),
        })
        if resp.status_code != 201:
            return
        booking = resp.json()

        upload = self.client.post(
            "/api/v1/bookings/upload-payment",
            data={"booking_reference": booking["booking_reference"]},
            files={"payment_proof": ("proof.png", PROOF_BYTES, "image/png")},
        )
        if upload.status_code == 200:
            AWAITING_REVIEW.append((booking["booking_reference"], booking["verification_code"]))


class ThroughputUser(HttpUser):
    """
    TEST 2: Throughput - Cache effectiveness

    Run twice:
      1. With Redis: locust -f locustfile.py --tags throughput -u 100 -r 20 --run-time 60s
      2. Without Redis: Stop Redis, run again
    """
    wait_time = between(0.1, 0.5)

    @tag("throughput", "read")
    @task(10)
    def list_showtimes_cached(self):
        resp = self.client.get("/api/v1/showtimes/?page=1&page_size=20", name="/api/v1/showtimes/ [cached]")
        if resp.status_code == 200:
            for showtime in resp.json().get("showtimes", []):
                if showtime["id"] not in SHOWTIME_IDS:
                    SHOWTIME_IDS.append(showtime["id"])

    @tag("throughput", "read")
    @task(5)
    def seat_map(self):
        if SHOWTIME:
            self.client.get(
                "/api/v1/bookings/occupied-seats",
                params={"showtime_id": SHOWTIME["id"], "movie_title": SHOWTIME["movie_title"]},
                name="/api/v1/bookings/occupied-seats [cached]",
            )

    @tag("throughput", "read")
    @task(3)
    def get_showtime_detail(self):
        if SHOWTIME_IDS:
            self.client.get(f"/api/v1/showtimes/{random.choice(SHOWTIME_IDS)}", name="/api/v1/showtimes/{id}")

    @tag("throughput")
    @task(1)
    def health_check(self):
        self.client.get("/health")


class EdgeCaseUser(HttpUser):
    """
    TEST 3: Edge cases - Bad input handling

    Run: locust -f locustfile.py --tags edge -u 20 -r 5 --run-time 30s

    System should NOT crash, return proper error codes.
    """
    wait_time = between(0.5, 1.5)

    def _expect(self, resp, codes):
        if resp.status_code in codes:
            resp.success()
        else:
            resp.failure(f"Expected {codes}, got {resp.status_code}")

    @tag("edge")
    @task
    def missing_fields(self):
        with self.client.post("/api/v1/bookings/", json={"showtime_id": 1}, catch_response=True) as resp:
            self._expect(resp, [400])

    @tag("edge")
    @task
    def unknown_showtime(self):
        with self.client.post("/api/v1/bookings/", json={
            "showtime_id": 999999,
            "movie_title": "Nope",
            "customer_name": "Edge",
            "customer_email": "edge@load.test",
            "seat_numbers": ["A1"],
            "total_amount": "1",
        }, catch_response=True) as resp:
            self._expect(resp, [404])

    @tag("edge")
    @task
    def negative_amount(self):
        with self.client.post("/api/v1/bookings/", json={
            "showtime_id": 1,
            "movie_title": "Nope",
            "customer_name": "Edge",
            "customer_email": "edge@load.test",
            "seat_numbers": ["A1"],
            "total_amount": "-5",
        }, catch_response=True) as resp:
            self._expect(resp, [400])

    @tag("edge")
    @task
    def malformed_json(self):
        with self.client.post("/api/v1/bookings/", data="not json at all", catch_response=True) as resp:
            self._expect(resp, [400, 422])

    @tag("edge")
    @task
    def upload_for_unknown_booking(self):
        with self.client.post(
            "/api/v1/bookings/upload-payment",
            data={"booking_reference": "BK0"},
            files={"payment_proof": ("proof.png", PROOF_BYTES, "image/png")},
            catch_response=True,
        ) as resp:
            self._expect(resp, [404])

    @tag("edge")
    @task
    def scan_without_admin(self):
        with self.client.post("/api/v1/bookings/scan-ticket", json={"qr_data": "{}"}, catch_response=True) as resp:
            self._expect(resp, [401])
