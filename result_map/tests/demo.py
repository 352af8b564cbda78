#!/usr/bin/env python3
"""
Walkthrough of the result map API against a running server.
Start the server first (python main.py) with GOOGLE_MAPS_API_KEY configured.
"""

import json
import os

import requests
from dotenv import load_dotenv

load_dotenv()

BASE_URL = os.getenv('RESULT_MAP_BASE_URL', f"http://localhost:{os.getenv('PORT', '5001')}")


def post(path, payload):
    response = requests.post(f"{BASE_URL}{path}", json=payload, timeout=30)
    print(f"POST {path} -> {response.status_code}")
    return response


def show_results(data):
    print(f"  {data['result_count']} results, {len(data['live_markers'])} markers on the map")
    for result in data['visible_results'][:5]:
        hint = result.get('travel_hint') or ''
        print(f"  - {result['name']} ({result.get('rating', 'N/A')}) {hint}")
    summary = data.get('distance_summary')
    if summary:
        print(f"  Average walk: {summary['walking']}, average drive: {summary['driving']}")


def demo():
    print("Result Map API Demo")
    print("=" * 40)

    health = requests.get(f"{BASE_URL}/", timeout=10)
    print(json.dumps(health.json(), indent=2))

    response = post('/api/search', {'query': 'tacos near Harvard Square'})
    if response.status_code != 200:
        print(f"Search failed: {response.text}")
        return False
    show_results(response.json()['data'])

    # Zoom into a narrower window around the first result
    response = post('/api/viewport', {'south': 42.368, 'west': -71.126, 'north': 42.378, 'east': -71.112, 'zoom': 17})
    show_results(response.json()['data'])

    response = post('/api/location', {'lat': 42.3736, 'lng': -71.1190})
    data = response.json()['data']
    visible = data['visible_results']
    if visible:
        first = visible[0]
        response = post('/api/select', {'id': first['id']})
        selection = response.json()['data']
        detail = selection.get('detail') or {}
        print(f"  Selected: {detail.get('name')} | {detail.get('phone') or 'no phone'} | {detail.get('website') or 'no website'}")
        for review in detail.get('reviews', [])[:2]:
            print(f"    \"{review['text'][:80]}\" - {review['author']}")

    post('/api/map-type', {'type': '3d'})
    return True


if __name__ == "__main__":
    try:
        demo()
    except requests.exceptions.ConnectionError:
        print(f"Could not reach {BASE_URL}. Is the server running?")
