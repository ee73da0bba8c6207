from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

Relationship = Literal["self", "child", "parent", "spouse"]
RecordType = Literal["blood", "imaging", "prescription", "diagnosis", "other"]
DiseaseType = Literal["hypertension", "diabetes", "asthma", "heart", "other"]
ReminderType = Literal["medication", "checkup", "test"]
TimeRange = Literal["1M", "3M", "6M", "1Y", "ALL"]


class CamelModel(BaseModel):
    # Python code uses snake_case, the UI sends and expects camelCase
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# Base models describe rows as stored, which may predate the current
# constraints. *Create models tighten them for writes.
class UserBase(CamelModel):
    id: str
    name: str
    avatar: Optional[str] = None
    relationship: str
    color: str


class UserCreate(UserBase):
    relationship: Relationship


class User(UserBase):
    pass


class KeyIndicator(CamelModel):
    name: str
    value: str
    unit: str = ""
    normal_range: Optional[str] = None
    is_abnormal: bool = False


class MedicalRecordBase(CamelModel):
    id: str
    user_id: str
    title: str
    hospital: str
    type: str
    date: str
    image_uri: Optional[str] = None
    description: Optional[str] = None
    key_indicators: Optional[List[KeyIndicator]] = None
    is_abnormal: bool = False
    created_at: Optional[str] = None
    disease_id: Optional[str] = None


class MedicalRecordCreate(MedicalRecordBase):
    type: RecordType
    date: str = Field(pattern=r"^\d{4}-\d{2}-\d{2}$")


class MedicalRecord(MedicalRecordBase):
    pass


class IndicatorValue(CamelModel):
    date: str
    value: float
    is_abnormal: bool = False


class DiseaseIndicator(CamelModel):
    name: str
    unit: str
    normal_range: str = ""
    values: List[IndicatorValue] = []


class HealthReminderBase(CamelModel):
    id: str
    title: str
    description: str = ""
    date: str
    type: str
    is_completed: bool = False
    is_repeating: bool = False
    repeat_interval: Optional[int] = None


class HealthReminderCreate(HealthReminderBase):
    type: ReminderType
    repeat_interval: Optional[int] = Field(default=None, ge=1)


class HealthReminder(HealthReminderBase):
    pass


class ChronicDiseaseBase(CamelModel):
    id: str
    user_id: str
    name: str
    type: str
    indicators: List[DiseaseIndicator] = []


class ChronicDiseaseCreate(ChronicDiseaseBase):
    type: DiseaseType
    reminders: List[HealthReminderCreate] = []


class ChronicDisease(ChronicDiseaseBase):
    reminders: List[HealthReminder] = []


class Statistics(CamelModel):
    total_records: int = 0
    chronic_diseases: int = 0
    pending_reminders: int = 0
    abnormal_records: int = 0


class IndicatorPoint(CamelModel):
    date: str
    value: float
    record_title: str
    hospital: str
    is_abnormal: bool = False


class ReminderUpdate(CamelModel):
    is_completed: bool


def _as_text(value):
    if value is None:
        return ""
    if isinstance(value, (int, float)):
        return str(value)
    return value


class OcrIndicator(BaseModel):
    name: str = ""
    value: str = ""
    unit: str = ""

    @field_validator("name", "value", "unit", mode="before")
    @classmethod
    def blank_to_text(cls, value):
        return _as_text(value)


class OcrPayload(BaseModel):
    """Loosely typed result of the OCR collaborator; every field may be blank."""

    title: str = ""
    hospital: str = ""
    name: str = ""
    gender: str = ""
    age: str = ""
    date: str = ""
    chief_complaint: str = ""
    diagnosis: str = ""
    treatment: str = ""
    advice: str = ""
    description: str = ""
    indicators: List[OcrIndicator] = []

    @field_validator(
        "title", "hospital", "name", "gender", "age", "date",
        "chief_complaint", "diagnosis", "treatment", "advice", "description",
        mode="before",
    )
    @classmethod
    def blank_to_text(cls, value):
        return _as_text(value)

    @field_validator("indicators", mode="before")
    @classmethod
    def only_lists(cls, value):
        return value if isinstance(value, list) else []


class IntakeRequest(CamelModel):
    user_id: str
    payload: OcrPayload
    image_uri: Optional[str] = None
    disease_id: Optional[str] = None
