import os, random, time, httpx

WRITE_KEY = os.environ["THINGSPEAK_WRITE_KEY"]
HOST = os.getenv("THINGSPEAK_URL", "https://api.thingspeak.com")
INTERVAL = 20  # ThingSpeak free tier accepts one update per 15s

moisture = 650.0

with httpx.Client(base_url=HOST, timeout=10) as client:
    while True:
        # soil dries slowly; the pump kicks in once it reads Dry
        moisture = min(1000.0, moisture + random.uniform(5, 40))
        pump = 1 if moisture >= 800 else 0
        if pump:
            moisture = random.uniform(350, 500)

        payload = {
            "api_key": WRITE_KEY,
            "field1": round(moisture, 1),
            "field2": random.randint(200, 900),
            "field3": round(random.uniform(20, 25), 1),
            "field4": round(random.uniform(40, 70), 1),
            "field5": pump,
        }
        resp = client.post("/update.json", params=payload)
        print("TX", {k: v for k, v in payload.items() if k != "api_key"}, "->", resp.text)
        time.sleep(INTERVAL)
