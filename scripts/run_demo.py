#!/usr/bin/env python3
"""
run_demo.py - End-to-end demo of the gym order workflow
- Logs in the seeded gym owner, trainer and student (see seed.py)
- Owner lists the catalog and tops up stock
- Student places an order, trainer prepares and completes it
- Student places and cancels a second order; stock comes back
- Prints order stats
"""

import requests
import json
import os
from typing import Dict, Any, Optional, List

class DemoRunner:
    def __init__(self):
        self.base_url = os.getenv("GYMOS_URL", "http://localhost:8000")
        self.password = os.getenv("DEMO_PASSWORD", "P@ssw0rd!")
        self.emails = {
            "owner": "gymowner@demo-gym.com",
            "trainer": "trainer@demo-gym.com",
            "student": "student@demo-gym.com",
        }
        self.tokens: Dict[str, Optional[str]] = {k: None for k in self.emails}

    # ---------- helpers ----------
    def show_step(self, title: str):
        print(f"\n=== {title} ===")

    def mask_token(self, token: str) -> str:
        if not token:
            return "<none>"
        return token if len(token) <= 12 else f"{token[:8]}...{token[-6:]}"

    def hdrs(self, who: str) -> Dict[str, str]:
        tok = self.tokens.get(who)
        return {"Authorization": f"Bearer {tok}"} if tok else {}

    def call_api(
        self,
        method: str,
        path: str,
        headers: Optional[Dict] = None,
        data: Optional[Any] = None,
        expected_status: List[int] = [200, 201, 204],
        quiet: bool = False,
        timeout: int = 30,
    ):
        url = f"{self.base_url}{path}"
        if not quiet:
            print(f"\n-> {method} {url}")
            if headers and "Authorization" in headers:
                tok = headers["Authorization"].replace("Bearer ", "")
                print(f"   Authorization: Bearer {self.mask_token(tok)}")
            if data is not None:
                print(f"   Body: {json.dumps(data, indent=2)}")

        try:
            resp = requests.request(
                method=method,
                url=url,
                headers=headers,
                json=data if isinstance(data, (dict, list)) else None,
                timeout=timeout,
            )
            if not quiet:
                status_color = "\033[92m" if resp.status_code in expected_status else "\033[93m"
                print(f"   Status: {status_color}{resp.status_code}\033[0m")

            try:
                js = resp.json()
                if not quiet:
                    print("   JSON:")
                    print(json.dumps(js, indent=2))
                return {"status": resp.status_code, "data": js, "raw": resp.text}
            except json.JSONDecodeError:
                if resp.text and not quiet:
                    print("   Content:")
                    print(resp.text)
                return {"status": resp.status_code, "data": None, "raw": resp.text}
        except requests.exceptions.RequestException as e:
            if not quiet:
                print(f"   Error: \033[91m{e}\033[0m")
            return {"status": None, "data": None, "raw": None, "error": str(e)}

    def stock_of(self, product_id: int) -> Optional[int]:
        r = self.call_api("GET", f"/products/{product_id}", headers=self.hdrs("owner"), quiet=True)
        return (r.get("data") or {}).get("stock_quantity")

    # ---------- flow ----------
    def preflight_health_checks(self) -> bool:
        self.show_step("Preflight: API health")
        result = self.call_api("GET", "/health", expected_status=[200], quiet=True)
        ok = result.get("status") == 200
        color = "\033[92m" if ok else "\033[91m"
        print(f"  - {'gymos'.ljust(14)} -> {color}{'OK' if ok else 'FAIL (%s)' % result.get('status')}\033[0m")
        return ok

    def run_demo(self):
        print("Starting GymOS order workflow demo")
        print("=" * 50)

        if not self.preflight_health_checks():
            print("\033[91mAPI is not reachable; start it with `uvicorn gymos.main:app`.\033[0m")
            return

        # 1) Log everyone in
        for who, email in self.emails.items():
            self.show_step(f"{who.title()}: login")
            lr = self.call_api("POST", "/auth/login", data={"email": email, "password": self.password})
            if lr.get("data"):
                self.tokens[who] = lr["data"].get("access_token")
                print(f"{who.title()} access token: {self.mask_token(self.tokens[who])}")
        if not all(self.tokens.values()):
            print("\033[93mHint: run scripts/seed.py first to create the demo gym.\033[0m")
            return

        # 2) Catalog
        self.show_step("Owner: list products")
        pr = self.call_api("GET", "/products", headers=self.hdrs("owner"))
        products = (pr.get("data") or {}).get("items") or []
        if not products:
            print("No products found; nothing to order")
            return
        product_id = products[0]["id"]

        self.show_step("Owner: set stock to 20")
        self.call_api("PATCH", f"/products/{product_id}/stock", headers=self.hdrs("owner"),
                      data={"stock_quantity": 20})

        # 3) Student orders, trainer moves it along
        self.show_step("Student: place order for 3 units")
        co = self.call_api("POST", "/orders", headers=self.hdrs("student"),
                           data={"items": [{"product_id": product_id, "quantity": 3}], "notes": "pick up after class"})
        order = co.get("data") or {}
        order_id = order.get("id")
        print(f"Order: {order.get('order_number')}; total: {order.get('total_amount')}; stock now {self.stock_of(product_id)}")

        self.show_step("Student: try to order more than is in stock")
        self.call_api("POST", "/orders", headers=self.hdrs("student"),
                      data={"items": [{"product_id": product_id, "quantity": 1000}]}, expected_status=[409])

        if order_id:
            for status in ("prepared", "completed"):
                self.show_step(f"Trainer: mark order {status}")
                self.call_api("PATCH", f"/orders/{order_id}/status", headers=self.hdrs("trainer"),
                              data={"status": status})

        # 4) Second order gets cancelled
        self.show_step("Student: place and cancel a second order")
        co2 = self.call_api("POST", "/orders", headers=self.hdrs("student"),
                            data={"items": [{"product_id": product_id, "quantity": 2}]})
        order2_id = (co2.get("data") or {}).get("id")
        print(f"Stock after second order: {self.stock_of(product_id)}")
        if order2_id:
            self.call_api("DELETE", f"/orders/{order2_id}", headers=self.hdrs("student"), expected_status=[204])
            print(f"Stock after cancellation: {self.stock_of(product_id)}")

        # 5) Stats
        self.show_step("Owner: order stats")
        self.call_api("GET", "/orders/stats", headers=self.hdrs("owner"))

        print("\nDemo finished.")

if __name__ == "__main__":
    DemoRunner().run_demo()
