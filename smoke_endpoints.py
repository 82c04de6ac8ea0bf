#!/usr/bin/env python3
"""
Smoke script for a running Master Trainer console.
Run this against a live server to verify the main flows end to end.
"""
import asyncio
import os
import sys
from datetime import datetime

import httpx

BASE_URL = os.getenv("CONSOLE_URL", "http://127.0.0.1:5000")
SCENARIO_ID = os.getenv("SMOKE_SCENARIO_ID")  # start a real session when set


class ConsoleSmokeTester:
    def __init__(self):
        self.client = httpx.AsyncClient(base_url=BASE_URL, timeout=30.0)
        self.test_results = []

    async def log_test(self, test_name: str, success: bool, details: str = ""):
        status = "✅ PASS" if success else "❌ FAIL"
        result = f"{status} {test_name}"
        if details:
            result += f" - {details}"
        print(result)
        self.test_results.append({
            "test": test_name,
            "success": success,
            "details": details,
            "timestamp": datetime.now().isoformat(),
        })

    async def test_health_endpoints(self):
        print("\n🔍 Testing Health Endpoints...")
        try:
            response = await self.client.get("/")
            await self.log_test("Root endpoint", response.status_code == 200, f"Status: {response.status_code}")
        except httpx.HTTPError as e:
            await self.log_test("Root endpoint", False, str(e))

        try:
            response = await self.client.get("/health")
            data = response.json()
            await self.log_test("Health endpoint", response.status_code in (200, 503), f"Backend: {data.get('backend', 'unknown')}")
        except httpx.HTTPError as e:
            await self.log_test("Health endpoint", False, str(e))

    async def test_catalog(self):
        print("\n🔍 Testing Catalog...")
        try:
            response = await self.client.get("/catalog/scenarios", params={"pageSize": 5})
            body = response.json()
            await self.log_test(
                "Scenario list",
                response.status_code == 200,
                f"{len(body.get('data') or [])} scenarios, fallback={body.get('diagnostics', {}).get('used_fallback')}",
            )
        except httpx.HTTPError as e:
            await self.log_test("Scenario list", False, str(e))

    async def test_demo_session(self):
        print("\n🔍 Testing Demo Session...")
        try:
            response = await self.client.post("/practice/sessions/demo-session-id/load")
            await self.log_test("Demo session load", response.status_code == 200, f"Status: {response.status_code}")

            response = await self.client.post(
                "/practice/sessions/demo-session-id/messages", json={"content": "hi"}
            )
            await self.log_test("Short message rejected", response.status_code == 400, response.json().get("error", ""))
        except httpx.HTTPError as e:
            await self.log_test("Demo session", False, str(e))
        finally:
            await self.client.delete("/practice/sessions/demo-session-id")

    async def test_live_session(self):
        if not SCENARIO_ID:
            print("\n⚠️ SMOKE_SCENARIO_ID not set; skipping live session")
            return
        print("\n🔍 Testing Live Session...")
        try:
            response = await self.client.post("/practice/sessions", json={"scenarioId": SCENARIO_ID})
            ok = response.status_code == 200
            await self.log_test("Start session", ok, f"Status: {response.status_code}")
            if not ok:
                return
            sid = response.json()["data"]["session_id"]

            response = await self.client.post(
                f"/practice/sessions/{sid}/messages",
                json={"content": "Hi, thanks for taking the time. What are your priorities this quarter?"},
            )
            await self.log_test("Send message", response.status_code == 200, f"Status: {response.status_code}")

            response = await self.client.post(f"/practice/sessions/{sid}/end", json={"confirm": True})
            await self.log_test("End session", response.status_code == 200, f"Status: {response.status_code}")

            response = await self.client.get(f"/practice/sessions/{sid}/feedback")
            score = (response.json().get("data") or {}).get("overallScore")
            await self.log_test("Feedback", response.status_code == 200, f"Score: {score}")
        except httpx.HTTPError as e:
            await self.log_test("Live session", False, str(e))

    async def run_all_tests(self):
        print("🧪 Starting Master Trainer smoke run...")
        print(f"Testing against: {BASE_URL}")

        await self.test_health_endpoints()
        await self.test_catalog()
        await self.test_demo_session()
        await self.test_live_session()

        print("\n📊 Test Summary:")
        passed = sum(1 for result in self.test_results if result["success"])
        total = len(self.test_results)
        print(f"Passed: {passed}/{total}")

        if passed < total:
            print("\n❌ Failed Tests:")
            for result in self.test_results:
                if not result["success"]:
                    print(f"  - {result['test']}: {result['details']}")

        await self.client.aclose()
        return passed == total


async def main():
    tester = ConsoleSmokeTester()
    success = await tester.run_all_tests()
    if success:
        print("\n🎉 All checks passed!")
    else:
        print("\n⚠️ Some checks failed. Check the details above.")
    return success


if __name__ == "__main__":
    sys.exit(0 if asyncio.run(main()) else 1)
