#!/usr/bin/env python3
"""
Generates sample-data/loads_sample.xlsx, a dispatcher-style load sheet for
trying trucktalk against a real workbook.

Run from the repo root:
    python sample-data/generate_loads_xlsx.py

What is baked in:
  Sheet "Loads"
    - Broker-style headers ("Ref #", "Pickup", "PU Time", "Truck", "Shipper")
    - Pickup times typed as text with a zone: accepted
    - Delivery times stored as native Excel datetimes: Excel keeps no zone,
      so every one of them is reported as missing a timezone
    - Status spellings in mixed case
    - A fully blank row between two loads (skipped)
  Sheet "Notes"
    - Free text; ignored unless picked with --sheet
"""

from datetime import datetime
from pathlib import Path

import openpyxl

OUTPUT = Path(__file__).parent / "loads_sample.xlsx"

wb = openpyxl.Workbook()

ws = wb.active
ws.title = "Loads"

ws.append(["Ref #", "Pickup", "PU Time", "Delivery", "Delivery Appt", "Load Status", "Driver", "Phone", "Truck", "Shipper"])

data = [
    ["VR-88120", "Dallas TX", "2025-09-10T14:00:00Z", "Houston TX", datetime(2025, 9, 10, 20, 0), "SCHEDULED", "Ana Ruiz", "(214) 555-0101", 101, "Acme Freight"],
    ["VR-88121", "Memphis TN", "09/11/2025 09:30 CDT", "Nashville TN", datetime(2025, 9, 11, 13, 0), "in_transit", "Ben Cole", "", 102, "Blue Line Logistics"],
    [None, None, None, None, None, None, None, None, None, None],
    ["VR-88122", "Atlanta GA", "2025-09-12T08:00:00-04:00", "Charlotte NC", datetime(2025, 9, 12, 16, 0), "Delivered", "Cara Diaz", "+1 404 555 0103", 103, "Acme Freight"],
]

for row in data:
    ws.append(row)

for cell in ws["E"][1:]:
    cell.number_format = "yyyy-mm-dd hh:mm"

notes = wb.create_sheet("Notes")
notes.append(["Loads for the week of 2025-09-08. Call dispatch for changes."])

wb.save(OUTPUT)
print(f"Saved: {OUTPUT}")
