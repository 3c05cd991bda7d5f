import time
import subprocess
import httpx
import sys
import os
import signal
from datetime import date, timedelta

from campus_parking.app.core.jwt import issue_identity_token

BASE_URL = "http://127.0.0.1:8000"
API_PREFIX = "/v1"

OWNER = {"Authorization": f"Bearer {issue_identity_token(user_id=7001, username='persist_owner')}"}
RENTER = {"Authorization": f"Bearer {issue_identity_token(user_id=7002, username='persist_renter')}"}
RENTAL_DATE = (date.today() + timedelta(days=14)).isoformat()

def wait_for_server(retries=10, delay=2):
    url = f"{BASE_URL}/health"
    print(f"Waiting for server at {url}...")
    for i in range(retries):
        try:
            resp = httpx.get(url)
            if resp.status_code == 200:
                print("✅ Server is up!")
                return True
        except httpx.ConnectError:
            pass
        except Exception as e:
            print(f"Connect error: {e}")
        time.sleep(delay)
    print("❌ Server failed to start.")
    return False

def start_server(extra_env=None):
    return subprocess.Popen(
        [sys.executable, "-m", "uvicorn", "campus_parking.app.main:app", "--host", "127.0.0.1", "--port", "8000"],
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
        env={**os.environ, **(extra_env or {})},
    )

def stop_server(proc):
    proc.send_signal(signal.SIGTERM)
    proc.wait()

def run_verification():
    # 1. Start Server (First Run)
    print("\n--- [Step 1] Starting Server (Initial) ---")
    proc = start_server({"DB_ECHO": "True"})  # Enable echo to see SQL
    rental_id = None

    try:
        if not wait_for_server():
            server_logs = proc.communicate(timeout=2)
            print("Server Stdout:", server_logs[0].decode())
            print("Server Stderr:", server_logs[1].decode())
            raise Exception("Server start failed")

        # 2. Register a spot and rent it
        print("\n--- [Step 2] Registering Spot and Renting It (Persistence Test) ---")
        resp = httpx.post(
            f"{BASE_URL}{API_PREFIX}/spots",
            json={"code": "P-001", "lot": "P", "distance_to_campus_m": 120},
            headers=OWNER,
        )
        if resp.status_code == 409:
            print("⚠️ Spot already exists (persistence working from previous run?)")
            available = httpx.get(
                f"{BASE_URL}{API_PREFIX}/spots/available",
                params={"lot": "P", "date": RENTAL_DATE},
                headers=RENTER,
            ).json()["spots"]
            spot_id = available[0]["id"] if available else None
        elif resp.status_code == 201:
            print("✅ Spot Registered Successfully")
            spot_id = resp.json()["id"]
        else:
            print(f"❌ Registration Failed: {resp.status_code} {resp.text}")
            raise Exception("Registration failed")

        if spot_id is not None:
            resp = httpx.post(
                f"{BASE_URL}{API_PREFIX}/rentals",
                json={"spot_id": spot_id, "rental_date": RENTAL_DATE, "price": 12.5},
                headers=RENTER,
            )
            if resp.status_code != 201:
                print(f"❌ Rental Failed: {resp.status_code} {resp.text}")
                raise Exception("Rental failed")
            rental_id = resp.json()["id"]
            print(f"✅ Rental {rental_id} created for {RENTAL_DATE}")

    finally:
        print("\n--- [Step 3] Stopping Server ---")
        stop_server(proc)

    time.sleep(2)  # Wait for port release

    # 3. Restart Server
    print("\n--- [Step 4] Restarting Server (Verification) ---")
    proc2 = start_server()

    try:
        if not wait_for_server():
            raise Exception("Server restart failed")

        # 4. The claim survived the restart
        print("\n--- [Step 5] Checking Availability (Post-Restart) ---")
        resp = httpx.get(
            f"{BASE_URL}{API_PREFIX}/spots/available",
            params={"lot": "P", "date": RENTAL_DATE},
            headers=RENTER,
        )
        codes = [s["code"] for s in resp.json()["spots"]]
        if "P-001" in codes:
            print("❌ Spot shows as free after restart (Persistence Issue?)")
            raise Exception("Claim lost after restart")
        print("✅ Spot still claimed (Claim Persisted!)")

        # 5. Verify rental
        if rental_id is not None:
            print("\n--- [Step 6] Verifying Rental ---")
            resp = httpx.get(f"{BASE_URL}{API_PREFIX}/rentals/{rental_id}", headers=RENTER)
            if resp.status_code == 200:
                print("✅ Rental Verified")
                print(resp.json())
            else:
                print(f"❌ Rental Check Failed: {resp.status_code}")

    finally:
        print("\n--- [Step 7] Stopping Server ---")
        stop_server(proc2)

if __name__ == "__main__":
    run_verification()
