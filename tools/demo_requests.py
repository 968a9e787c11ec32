import json, os, sys
import requests

BASE = os.getenv("CARS_APP_URL", "http://127.0.0.1:8080")

CALLS = [
    ("/initLedger", {}),
    ("/readCarAsset", {"carID": "asset1"}),
    ("/readPersonAsset", {"personID": "person1"}),
    ("/getCarsByColor", {"color": "red"}),
    ("/getCarsByColorAndOwner", {"color": "red", "ownerID": "person1"}),
    ("/transferCarAsset", {"carID": "asset1", "newOwnerID": "Alice", "acceptMalfunctionedStr": "n"}),
    ("/changeCarColor", {"carID": "asset1", "color": "blue"}),
    ("/repairCar", {"carID": "asset1"}),
    ("/addCarMalfunction", {"carID": "asset1", "description": "flat tyre", "repairPrice": "120.5"}),
]

for path, body in CALLS:
    r = requests.post(BASE + path, json=body, timeout=90)
    print(path, r.status_code)
    try:
        print(json.dumps(r.json(), indent=1))
    except ValueError:
        print(r.text, file=sys.stderr)

print("Health:", requests.get(BASE + "/health", timeout=5).json())
