"""
Normalized record types shared by the parsers, the store and the metrics.

Dates are kept as the strings found in the export (``YYYY-MM-DD`` for daily
aggregates, ISO timestamps for sleep sessions and measurements). Numeric
sub-fields that the export may omit default to zero, matching what the
parsers produce for absent columns.
"""

from typing import Literal, Optional, get_args

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

DeviceCategory = Literal["bed", "tracker"]
SleepCountingMode = Literal["mat-first", "tracker-first", "average"]
PatternEventType = Literal["point", "range"]

SLEEP_COUNTING_MODES: tuple[str, ...] = get_args(SleepCountingMode)


class Record(BaseModel):
    # camelCase input is accepted for payloads written by the browser app
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class StepData(Record):
    date: str
    steps: int
    distance: float = 0.0  # km
    elevation: float = 0.0
    calories: float = 0.0


class SleepData(Record):
    date: str  # night label: the day of waking up
    start: str
    end: str
    duration: float  # seconds asleep, awake time excluded
    deep_sleep: Optional[float] = None
    light_sleep: Optional[float] = None
    rem_sleep: Optional[float] = None
    awake: Optional[float] = None
    is_nap: bool = False
    sleep_score: Optional[float] = None
    hr_average: Optional[float] = None
    hr_min: Optional[float] = None
    hr_max: Optional[float] = None
    duration_to_sleep: Optional[float] = None
    duration_to_wake_up: Optional[float] = None
    snoring: Optional[float] = None
    snoring_episodes: Optional[int] = None
    wakeup_count: Optional[int] = None
    night_events: str = ""
    notes: str = ""
    device_category: Optional[DeviceCategory] = None


class WeightData(Record):
    date: str
    weight: float
    fat_mass: float = 0.0
    bone_mass: float = 0.0
    muscle_mass: float = 0.0
    hydration: float = 0.0


class BloodPressureData(Record):
    date: str
    systolic: int
    diastolic: int
    hr: int


class HeightData(Record):
    date: str
    height: float


class SpO2Data(Record):
    date: str
    spo2: int


class ActivityData(Record):
    date: str
    type: str = "activity"
    duration: int
    calories: float = 0.0
    distance: float = 0.0


class PatternEvent(Record):
    """User-annotated marker, independent of any data source."""
    id: str
    title: str
    title_key: Optional[str] = None
    type: PatternEventType = "point"
    start_date: str
    end_date: Optional[str] = None
    notes: Optional[str] = None
    color: Optional[str] = None


class HealthMetrics(Record):
    steps: list[StepData] = Field(default_factory=list)
    sleep: list[SleepData] = Field(default_factory=list)
    weight: list[WeightData] = Field(default_factory=list)
    bp: list[BloodPressureData] = Field(default_factory=list)
    height: list[HeightData] = Field(default_factory=list)
    spo2: list[SpO2Data] = Field(default_factory=list)
    activities: list[ActivityData] = Field(default_factory=list)


METRIC_NAMES: tuple[str, ...] = tuple(HealthMetrics.model_fields)


class HealthDataSource(Record):
    id: str
    label: str
    data: HealthMetrics = Field(default_factory=HealthMetrics)
    imported_at: str


class HealthDataStore(Record):
    """Persisted root: one source per import id plus the shared events."""
    sources: dict[str, HealthDataSource] = Field(default_factory=dict)
    events: list[PatternEvent] = Field(default_factory=list)


class HealthData(HealthMetrics):
    """Read-only flattening of a store; recomputed on every read."""
    events: list[PatternEvent] = Field(default_factory=list)
    sources: list[str] = Field(default_factory=list)


class RangeEventStat(Record):
    event: PatternEvent
    avg_steps: Optional[float] = None
    avg_sleep_seconds: Optional[float] = None
    avg_asleep_time: Optional[float] = None
    avg_wake_time: Optional[float] = None
    weight_delta: Optional[float] = None
    avg_deep_sleep_seconds: Optional[float] = None
    avg_light_sleep_seconds: Optional[float] = None
    avg_rem_sleep_seconds: Optional[float] = None
    avg_awake_seconds: Optional[float] = None
    avg_time_to_sleep_seconds: Optional[float] = None
    avg_time_to_wake_seconds: Optional[float] = None
    avg_hr_average: Optional[float] = None
