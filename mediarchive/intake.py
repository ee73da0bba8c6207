"""
Normalise the loosely typed payload returned by the OCR collaborator into a
:class:`~mediarchive.schemas.MedicalRecordCreate` ready for the store.

Nothing here talks to an OCR service; it only cleans up what one produced.
"""

from __future__ import annotations

import re
import uuid
from datetime import date, datetime
from typing import Optional

from .schemas import KeyIndicator, MedicalRecordCreate, OcrPayload

ISO_DATE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
CJK_DATE = re.compile(r"(\d{4})年(\d{1,2})月(\d{1,2})日")
YEAR_FIRST = re.compile(r"(\d{4})[/.](\d{1,2})[/.](\d{1,2})")
YEAR_LAST = re.compile(r"(\d{1,2})[/.](\d{1,2})[/.](\d{4})")


def _keywords(chinese, english):
    # English terms must be whole words: "ct" must not match "infection"
    return re.compile(rf"{chinese}|(?<![a-z])(?:{english})(?![a-z])")


BLOOD_WORDS = _keywords("血常规|血细胞|白细胞|红细胞|血红蛋白|血小板|血液分析", "blood|cbc|hemoglobin|wbc|rbc|platelets?")
IMAGING_WORDS = _keywords("核磁|x光|b超|彩超|超声|影像|放射", "ct|mri|x-ray|ultrasound|imaging|radiology")
PRESCRIPTION_WORDS = _keywords("处方|用药|药物|剂量|用法", "prescriptions?|dosage")
DIAGNOSIS_WORDS = _keywords("诊断|病历|门诊|住院|出院", "diagnos[ie]s|outpatient|inpatient|discharge")

# (indicator-name pattern, title) checked in order
TITLE_RULES = (
    (re.compile(r"白细胞|红细胞|血红蛋白|血小板|wbc|rbc|hemoglobin|platelet", re.I), "血常规结果"),
    (re.compile(r"血压|收缩压|舒张压|blood pressure|systolic|diastolic", re.I), "血压测量"),
    (re.compile(r"血糖|葡萄糖|glucose", re.I), "血糖检测"),
    (re.compile(r"尿常规|urinalysis", re.I), "尿常规结果"),
)
DEFAULT_TITLE = "门诊病历"


def _iso(year, month, day) -> Optional[str]:
    try:
        return date(int(year), int(month), int(day)).isoformat()
    except ValueError:
        return None


def normalize_date(text: Optional[str]) -> Optional[str]:
    """Return *text* as ``YYYY-MM-DD`` or ``None`` when no date can be read."""
    if not text:
        return None
    text = text.strip()

    if ISO_DATE.match(text):
        return _iso(*text.split("-"))

    for pattern, order in ((CJK_DATE, (1, 2, 3)), (YEAR_FIRST, (1, 2, 3)), (YEAR_LAST, (3, 1, 2))):
        match = pattern.search(text)
        if match:
            return _iso(*(match.group(i) for i in order))

    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00")).date().isoformat()
    except ValueError:
        return None


def _indicator_names(payload: OcrPayload) -> str:
    return ",".join(indicator.name for indicator in payload.indicators)


def guess_title(payload: OcrPayload) -> str:
    if payload.title:
        return payload.title
    if payload.chief_complaint:
        return payload.chief_complaint
    if payload.diagnosis:
        return payload.diagnosis

    names = _indicator_names(payload)
    for pattern, title in TITLE_RULES:
        if pattern.search(names):
            return title

    if payload.hospital and payload.date:
        return f"{payload.hospital} {payload.date}"
    return DEFAULT_TITLE


def guess_record_type(payload: OcrPayload) -> str:
    text = " ".join((payload.title, payload.description, payload.diagnosis)).lower()
    if BLOOD_WORDS.search(text + " " + _indicator_names(payload).lower()):
        return "blood"
    if IMAGING_WORDS.search(text):
        return "imaging"
    if PRESCRIPTION_WORDS.search(text):
        return "prescription"
    if DIAGNOSIS_WORDS.search(text) or payload.diagnosis:
        return "diagnosis"
    return "other"


def build_description(payload: OcrPayload) -> str:
    parts = [
        payload.chief_complaint and f"主诉：{payload.chief_complaint}",
        payload.treatment and f"处置：{payload.treatment}",
        payload.advice and f"医嘱：{payload.advice}",
    ]
    return "\n".join(part for part in parts if part)


def build_record_from_payload(
    payload,
    user_id: str,
    image_uri: Optional[str] = None,
    disease_id: Optional[str] = None,
    record_id: Optional[str] = None,
    today: Optional[date] = None,
) -> MedicalRecordCreate:
    payload = payload if isinstance(payload, OcrPayload) else OcrPayload.model_validate(payload)
    record_date = normalize_date(payload.date) or (today or date.today()).isoformat()

    return MedicalRecordCreate(
        id=record_id or str(uuid.uuid4()),
        user_id=user_id,
        title=guess_title(payload),
        hospital=payload.hospital,
        type=guess_record_type(payload),
        date=record_date,
        image_uri=image_uri,
        description=build_description(payload) or None,
        key_indicators=[
            KeyIndicator(name=item.name, value=item.value, unit=item.unit, normal_range="", is_abnormal=False)
            for item in payload.indicators
            if item.name and item.value
        ],
        is_abnormal=False,
        disease_id=disease_id,
    )
