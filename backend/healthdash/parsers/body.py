"""Body measurements: weight, blood pressure, height and manual SpO2."""

import zipfile

from healthdash.parsers.common import dated_rows, pick, read_optional_csv, safe_float, safe_int
from healthdash.schemas import BloodPressureData, HeightData, SpO2Data, WeightData

WEIGHT_PATTERN = r"weight.*\.csv$"
BP_PATTERN = r"bp\.csv$"
HEIGHT_PATTERN = r"height\.csv$"
SPO2_PATTERN = r"manual_spo2\.csv$"


def parse_weight(zf: zipfile.ZipFile) -> list[WeightData]:
    records = []
    rows = read_optional_csv(zf, WEIGHT_PATTERN, "weight")
    for day, row in dated_rows(rows, "date", "Date", "Measure date"):
        weight = safe_float(pick(row, "Weight (kg)", "weight", "Weight"), 0.0)
        if weight <= 0:
            continue
        records.append(
            WeightData(
                date=day,
                weight=weight,
                fat_mass=safe_float(pick(row, "Fat mass (kg)", "fatMass"), 0.0),
                bone_mass=safe_float(pick(row, "Bone mass (kg)", "boneMass"), 0.0),
                muscle_mass=safe_float(pick(row, "Muscle mass (kg)", "muscleMass"), 0.0),
                hydration=safe_float(pick(row, "Hydration (kg)", "hydration"), 0.0),
            )
        )
    return records


def parse_blood_pressure(zf: zipfile.ZipFile) -> list[BloodPressureData]:
    records = []
    rows = read_optional_csv(zf, BP_PATTERN, "blood pressure")
    for day, row in dated_rows(rows, "date", "Date"):
        systolic = safe_int(pick(row, "systolic", "Systolic"), 0)
        hr = safe_int(pick(row, "Heart rate", "hr", "HR"), 0)
        if hr <= 0 and systolic <= 0:
            continue
        records.append(
            BloodPressureData(
                date=day,
                systolic=systolic,
                diastolic=safe_int(pick(row, "diastolic", "Diastolic"), 0),
                hr=hr,
            )
        )
    return records


def parse_height(zf: zipfile.ZipFile) -> list[HeightData]:
    records = []
    rows = read_optional_csv(zf, HEIGHT_PATTERN, "height")
    for day, row in dated_rows(rows, "date", "Date"):
        height = safe_float(pick(row, "Height (m)", "height"), 0.0)
        if height > 0:
            records.append(HeightData(date=day, height=height))
    return records


def parse_spo2(zf: zipfile.ZipFile) -> list[SpO2Data]:
    records = []
    rows = read_optional_csv(zf, SPO2_PATTERN, "SpO2")
    for day, row in dated_rows(rows, "date", "Date"):
        spo2 = safe_int(pick(row, "value", "Blood oxygen level"), 0)
        if spo2 > 0:
            records.append(SpO2Data(date=day, spo2=spo2))
    return records
