import argparse
import random

import requests

BASE_URL = "http://127.0.0.1:8000"

TOPICS = ["Mathematics", "Physics", "Chemistry", "English", "Computer Science"]
POSITIONS = ["unit_test_1", "unit_test_2", "mid_sem", "end_sem"]
FEE_STATES = ["paid", "partial", "overdue"]

# Profiles shape the synthetic data so every risk level shows up on the dashboard
PROFILES = {
    "steady": {"attendance": (88, 99), "start": (70, 95), "drift": (-5, 8), "fees": [0.9, 0.1, 0.0]},
    "slipping": {"attendance": (76, 88), "start": (65, 85), "drift": (-25, -5), "fees": [0.6, 0.3, 0.1]},
    "struggling": {"attendance": (50, 76), "start": (35, 60), "drift": (-20, 0), "fees": [0.3, 0.3, 0.4]},
}


def test_connection():
    try:
        r = requests.get(f"{BASE_URL}/dashboard/summary", timeout=5)
        print(f"Server status: {r.status_code}")
        return r.status_code == 200
    except requests.RequestException as e:
        print(f"Server connection error: {e}")
        return False


def make_subject(index, profile_name, rng):
    profile = PROFILES[profile_name]
    subject_id = f"STU{index:04d}"
    topics = rng.sample(TOPICS, k=3)

    snapshots = {}
    for topic in topics:
        score = rng.uniform(*profile["start"])
        for position in POSITIONS:
            snapshots.setdefault(position, []).append({"topic": topic, "score": round(max(0, min(100, score)))})
            score += rng.uniform(*profile["drift"]) / len(POSITIONS)

    fee_status = rng.choices(FEE_STATES, weights=profile["fees"])[0]
    financial = {"subject_id": subject_id, "fee_status": fee_status, "amount_due": 1500}
    if fee_status == "overdue":
        financial["days_overdue"] = rng.randint(5, 60)

    return {
        "academic": {"subject_id": subject_id, "name": f"Student {index}", "snapshots": snapshots},
        "attendance": {"subject_id": subject_id, "attendance_rate": round(rng.uniform(*profile["attendance"]), 1)},
        "financial": financial,
    }


def post_rows(role, rows):
    resp = requests.post(f"{BASE_URL}/subjects/updates", json={"role": role, "rows": rows}, timeout=30)
    if not resp.ok:
        print(f" → {role} upload failed: {resp.status_code} {resp.text}")
        return None
    report = resp.json()
    print(f" → {role}: {report['updated']} updated, {report['computed']} scored, {len(report['rejected'])} rejected")
    return report


def run(count, seed):
    if not test_connection():
        return

    rng = random.Random(seed)
    subjects = [make_subject(i, rng.choice(list(PROFILES)), rng) for i in range(1, count + 1)]

    # Sources report independently; shuffle the upload order to exercise the completion gate
    roles = ["academic", "attendance", "financial"]
    rng.shuffle(roles)
    for role in roles:
        print(f"\nUploading {role} data for {len(subjects)} subjects")
        post_rows(role, [subject[role] for subject in subjects])

    r = requests.get(f"{BASE_URL}/dashboard/summary", timeout=5)
    if r.ok:
        summary = r.json()["summary"]
        print(f"\nSubjects: {summary['total']}, complete: {summary['all_complete']}")
        print(f"Risk distribution: {summary['risk']}")
        print(f"Average attendance: {summary['avg_attendance']}%")
    else:
        print("Failed to get dashboard summary")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Seed a running tracker with synthetic subject data.")
    parser.add_argument("--count", type=int, default=25)
    parser.add_argument("--seed", type=int, default=None)
    parser.add_argument("--base-url", default=BASE_URL)
    args = parser.parse_args()
    BASE_URL = args.base_url.rstrip("/")
    run(args.count, args.seed)
