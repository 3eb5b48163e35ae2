#!/usr/bin/env python3
"""
SiteWalk - Test Data Generator
Generates mock marker payloads for load-testing the markers API
"""
import json
import random
import uuid
from pathlib import Path

# Configuration
NUM_MARKERS = 200
PAGE_COUNT = 3
PAGE_SIZE = (612.0, 792.0)  # US Letter in PDF points
OUTPUT_FILE = Path(__file__).parent.parent / "markers_mock.json"

EQUIPMENT = ["camera", "access_point", "intercom", "elevator"]
SHAPES = ["rectangle", "ellipse", "line", "arrow", "measurement"]
PATHS = ["polyline", "polygon", "area"]
LABELS = ["Lobby", "Dock", "Server Room", "Stairwell", "Parking", "Roof Access"]


def random_point():
    return (
        round(random.uniform(20, PAGE_SIZE[0] - 20), 2),
        round(random.uniform(20, PAGE_SIZE[1] - 20), 2),
    )


def generate_marker(i):
    """One POST /markers body; the kind rotates equipment / shape / path."""
    kind = i % 3
    x, y = random_point()
    marker = {
        "unique_id": str(uuid.uuid4()),
        "page": (i % PAGE_COUNT) + 1,
        "position_x": x,
        "position_y": y,
        "label": f"{random.choice(LABELS)} {i:03d}",
    }

    if kind == 0:
        marker["marker_type"] = EQUIPMENT[i % len(EQUIPMENT)]
        if marker["marker_type"] == "camera":
            marker["rotation"] = random.choice([0, 45, 90, 135, 180, 225, 270, 315])
    elif kind == 1:
        marker["marker_type"] = SHAPES[i % len(SHAPES)]
        marker["end_x"] = min(x + random.uniform(10, 120), PAGE_SIZE[0])
        marker["end_y"] = min(y + random.uniform(10, 120), PAGE_SIZE[1])
    else:
        marker["marker_type"] = PATHS[i % len(PATHS)]
        points = [(x, y)] + [random_point() for _ in range(random.randint(2, 5))]
        marker["points"] = [{"x": px, "y": py} for px, py in points]

    return marker


def main():
    markers = [generate_marker(i) for i in range(1, NUM_MARKERS + 1)]

    with open(OUTPUT_FILE, 'w', encoding='utf-8') as f:
        json.dump(markers, f, indent=2)

    print(f"✅ markers_mock.json generated with {len(markers)} markers.")
    print(f"\n📁 Location: {OUTPUT_FILE}")
    print(f"\n📊 By page:")
    for page in range(1, PAGE_COUNT + 1):
        count = len([m for m in markers if m['page'] == page])
        print(f"   • Page {page}: {count} markers")

    print(f"\n🏷️ By type:")
    for marker_type in sorted({m['marker_type'] for m in markers}):
        count = len([m for m in markers if m['marker_type'] == marker_type])
        print(f"   • {marker_type}: {count}")


if __name__ == "__main__":
    main()
