"""
Locust Load Test Suite

Run scenarios:
  locust -f locustfile.py --tags contention   # Many students, one individual slot
  locust -f locustfile.py --tags group        # Many students, one 5-seat cohort
  locust -f locustfile.py --tags throughput   # Cached schedule reads
  locust -f locustfile.py --tags edge         # Bad input
  locust -f locustfile.py                     # All tests

Every scenario needs the server running with PROFILE_SERVICE_URL unset so
any tutor/student id is accepted.
"""

import random
import uuid
from datetime import date, timedelta

from locust import HttpUser, between, events, tag, task

CONTENTION_TUTOR = f"load-tutor-{uuid.uuid4().hex[:6]}"
GROUP_TUTOR = f"load-group-tutor-{uuid.uuid4().hex[:6]}"
BROWSE_TUTORS = [f"load-browse-{i}" for i in range(5)]

ALL_WEEK = {
    day: {"available": True, "from": "00:00", "to": "00:00"}
    for day in ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")
}


def _slot_date() -> str:
    return (date.today() + timedelta(days=14)).isoformat()


def _student() -> str:
    return f"load-student-{uuid.uuid4().hex[:10]}"


@events.test_start.add_listener
def on_test_start(environment, **kwargs):
    print("\n" + "=" * 60)
    print(f"Contention tutor: {CONTENTION_TUTOR}")
    print(f"Group tutor:      {GROUP_TUTOR}")
    print("=" * 60)


class SetupMixin:
    def open_all_week(self, tutor_id: str) -> None:
        self.client.put(
            f"/api/v1/tutors/{tutor_id}/availability",
            json={"days": ALL_WEEK},
            name="/api/v1/tutors/{id}/availability",
        )


class ContentionUser(SetupMixin, HttpUser):
    """
    TEST 1: Individual slot contention - N students -> 1 slot

    Run: locust -f locustfile.py --tags contention -u 100 -r 50 --run-time 30s

    After test, verify:
      SELECT COUNT(*) FROM bookings
      WHERE tutor_id = '<contention tutor>' AND status <> 'cancelled';
    Should be exactly 1
    """

    wait_time = between(0, 0.1)

    def on_start(self):
        self.open_all_week(CONTENTION_TUTOR)

    @tag("contention")
    @task
    def book_same_slot(self):
        with self.client.post(
            "/api/v1/bookings/",
            json={
                "tutor_id": CONTENTION_TUTOR,
                "student_id": _student(),
                "session_date": _slot_date(),
                "session_time": "09:00",
                "subject": "Mathematics",
                "session_type": "individual",
                "price": "100.00",
            },
            name="/api/v1/bookings/ [contention]",
            catch_response=True,
        ) as resp:
            if resp.status_code in (201, 409):
                resp.success()
            else:
                resp.failure(f"Unexpected: {resp.status_code}")


class GroupUser(SetupMixin, HttpUser):
    """
    TEST 2: Cohort capacity - N students -> 5 seats

    Run: locust -f locustfile.py --tags group -u 100 -r 50 --run-time 30s

    After test, verify:
      SELECT current_size FROM group_cohorts WHERE tutor_id = '<group tutor>';
    Should be <= 5
    """

    wait_time = between(0, 0.1)

    def on_start(self):
        self.open_all_week(GROUP_TUTOR)

    @tag("group")
    @task
    def join_cohort(self):
        with self.client.post(
            "/api/v1/bookings/",
            json={
                "tutor_id": GROUP_TUTOR,
                "student_id": _student(),
                "session_date": _slot_date(),
                "session_time": "15:00",
                "subject": "Physics",
                "session_type": "group",
                "price": "40.00",
            },
            name="/api/v1/bookings/ [group]",
            catch_response=True,
        ) as resp:
            if resp.status_code == 201:
                resp.success()
            elif resp.status_code == 409:
                resp.success()  # Expected: cohort full
            else:
                resp.failure(f"Unexpected: {resp.status_code}")


class ThroughputUser(SetupMixin, HttpUser):
    """
    TEST 3: Throughput - schedule cache effectiveness

    Run twice (with and without Redis) and compare latency percentiles:
      locust -f locustfile.py --tags throughput -u 100 -r 20 --run-time 60s
    """

    wait_time = between(0.1, 0.5)

    def on_start(self):
        for tutor_id in BROWSE_TUTORS:
            self.open_all_week(tutor_id)

    @tag("throughput", "read")
    @task(10)
    def read_schedule(self):
        tutor_id = random.choice(BROWSE_TUTORS)
        self.client.get(f"/api/v1/tutors/{tutor_id}/schedule", name="/api/v1/tutors/{id}/schedule")

    @tag("throughput", "read")
    @task(3)
    def read_status(self):
        tutor_id = random.choice(BROWSE_TUTORS)
        self.client.get(f"/api/v1/tutors/{tutor_id}/status", name="/api/v1/tutors/{id}/status")

    @tag("throughput")
    @task(1)
    def health_check(self):
        self.client.get("/health")


class EdgeCaseUser(HttpUser):
    """
    TEST 4: Edge cases - bad input handling

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
    def past_slot(self):
        with self.client.post(
            "/api/v1/bookings/",
            json={
                "tutor_id": CONTENTION_TUTOR,
                "student_id": _student(),
                "session_date": "2020-01-06",
                "session_time": "09:00",
                "subject": "History",
                "price": "10.00",
            },
            name="/api/v1/bookings/ [past]",
            catch_response=True,
        ) as resp:
            self._expect(resp, [400])

    @tag("edge")
    @task
    def negative_price(self):
        with self.client.post(
            "/api/v1/bookings/",
            json={
                "tutor_id": CONTENTION_TUTOR,
                "student_id": _student(),
                "session_date": _slot_date(),
                "session_time": "10:00",
                "subject": "History",
                "price": "-5",
            },
            name="/api/v1/bookings/ [bad price]",
            catch_response=True,
        ) as resp:
            self._expect(resp, [400, 422])

    @tag("edge")
    @task
    def unknown_booking(self):
        with self.client.get("/api/v1/bookings/999999999", name="/api/v1/bookings/{id}", catch_response=True) as resp:
            self._expect(resp, [404])

    @tag("edge")
    @task
    def malformed_json(self):
        with self.client.post(
            "/api/v1/bookings/",
            data="not json at all",
            headers={"Content-Type": "application/json"},
            name="/api/v1/bookings/ [malformed]",
            catch_response=True,
        ) as resp:
            self._expect(resp, [400, 422])

    @tag("edge")
    @task
    def forged_webhook(self):
        with self.client.post(
            "/api/v1/webhook/chapa",
            json={"tx_ref": "tx-does-not-exist", "status": "success"},
            name="/api/v1/webhook/chapa [forged]",
            catch_response=True,
        ) as resp:
            self._expect(resp, [400, 404, 502, 503])
