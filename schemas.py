# schemas.py - request validation for the json api
# every payload is parsed here before it reaches storage

import re
import datetime as dt
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

MOBILE_RE = re.compile(r'^\d{10}$')


# day-first layouts seen in hand-entered records
DAY_FIRST_FORMATS = ('%d/%m/%Y', '%d/%m/%y', '%d-%m-%Y', '%d-%m-%y', '%d.%m.%Y', '%d.%m.%y')


def parse_visit_date(value):
    """Normalise a visit date to a ``date``.

    Older records were saved day first (``dd/mm/yyyy`` and a few hand-typed
    variants such as ``5/1/24``) while newer ones use ISO dates, sometimes
    with a time part, so all of these are accepted.
    """
    if value is None:
        return None
    if isinstance(value, dt.datetime):
        return value.date()
    if isinstance(value, dt.date):
        return value
    text = str(value).strip()
    if not text:
        raise ValueError('date is required')
    try:
        return dt.date.fromisoformat(text[:10])
    except ValueError:
        pass
    for fmt in DAY_FIRST_FORMATS:
        try:
            return dt.datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    raise ValueError(f'unrecognised date {text!r}')


def parse_timestamp(value):
    if value is None or isinstance(value, dt.datetime):
        return value
    text = str(value).strip()
    if not text:
        return None
    if text.endswith('Z'):
        text = text[:-1] + '+00:00'
    parsed = dt.datetime.fromisoformat(text)
    # stored naive in utc, like datetime.utcnow()
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(dt.timezone.utc).replace(tzinfo=None)
    return parsed


class ApiModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
        extra='ignore',
    )

    def to_columns(self, partial=False):
        return self.model_dump(exclude_unset=partial)


# settings, passwords are taken verbatim

class PasswordModel(ApiModel):
    model_config = ConfigDict(str_strip_whitespace=False)


class PasswordIn(PasswordModel):
    password: str = Field(min_length=1)


class VerifyIn(PasswordModel):
    password: str = ''


class ChangePasswordIn(PasswordModel):
    old_password: str = ''
    new_password: str = Field(min_length=1)


class ResetPasswordIn(PasswordModel):
    master_password: Optional[str] = None


class MasterPasswordIn(PasswordModel):
    master_password: str = Field(min_length=1)
    current_master_password: Optional[str] = None


# categories

class CategoryIn(ApiModel):
    parent_id: Optional[int] = None
    name: str = Field(min_length=1, max_length=200)
    type: Literal['FOLDER', 'ITEM'] = 'FOLDER'
    customer_price: Optional[float] = Field(default=None, ge=0)
    wholesale_price: Optional[float] = Field(default=None, ge=0)
    sort_order: int = 0

    @field_validator('sort_order', mode='before')
    @classmethod
    def _default_sort(cls, value):
        return 0 if value is None else value


class CategoryUpdate(CategoryIn):
    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    type: Optional[Literal['FOLDER', 'ITEM']] = None

    @field_validator('name', 'type')
    @classmethod
    def _not_null(cls, value):
        if value is None:
            raise ValueError('may not be null')
        return value


# customers

class CustomerIn(ApiModel):
    date: dt.date
    name: str = Field(min_length=1, max_length=200)
    age: Optional[int] = Field(default=None, ge=0, le=150)
    address: Optional[str] = None
    mobile: Optional[str] = None
    new_power_right_sph: Optional[str] = None
    new_power_right_cyl: Optional[str] = None
    new_power_right_axis: Optional[str] = None
    new_power_right_add: Optional[str] = None
    new_power_left_sph: Optional[str] = None
    new_power_left_cyl: Optional[str] = None
    new_power_left_axis: Optional[str] = None
    new_power_left_add: Optional[str] = None
    old_power_right_sph: Optional[str] = None
    old_power_right_cyl: Optional[str] = None
    old_power_right_axis: Optional[str] = None
    old_power_right_add: Optional[str] = None
    old_power_left_sph: Optional[str] = None
    old_power_left_cyl: Optional[str] = None
    old_power_left_axis: Optional[str] = None
    old_power_left_add: Optional[str] = None
    notes: Optional[str] = None
    prescription_photo_path: Optional[str] = None

    @field_validator('date', mode='before')
    @classmethod
    def _visit_date(cls, value):
        return parse_visit_date(value)

    @field_validator('mobile')
    @classmethod
    def _mobile(cls, value):
        if not value:
            return None
        if not MOBILE_RE.match(value):
            raise ValueError('mobile number must be exactly 10 digits')
        return value


class CustomerUpdate(CustomerIn):
    date: Optional[dt.date] = None
    name: Optional[str] = Field(default=None, min_length=1, max_length=200)

    @field_validator('date', 'name')
    @classmethod
    def _not_null(cls, value):
        if value is None:
            raise ValueError('may not be null')
        return value


class CustomerQuery(ApiModel):
    search: Optional[str] = None
    date_from: Optional[dt.date] = Field(default=None, alias='from')
    date_to: Optional[dt.date] = Field(default=None, alias='to')

    @field_validator('date_from', 'date_to', mode='before')
    @classmethod
    def _range_date(cls, value):
        if value in (None, ''):
            return None
        return parse_visit_date(value)


class BulkDeleteIn(ApiModel):
    ids: List[int]


# presets

class PresetIn(ApiModel):
    name: str = Field(min_length=1, max_length=100)


class PresetFieldUpdate(ApiModel):
    id: int
    is_enabled: bool
    order_index: int
    label: Optional[str] = Field(default=None, min_length=1, max_length=100)


class PresetFieldsIn(ApiModel):
    fields: List[PresetFieldUpdate]


# backup records, ids are kept as exported

class CategoryRecord(CategoryIn):
    id: int
    updated_at: Optional[dt.datetime] = None

    @field_validator('updated_at', mode='before')
    @classmethod
    def _ts(cls, value):
        return parse_timestamp(value)


class CustomerRecord(CustomerIn):
    id: int
    created_at: Optional[dt.datetime] = None

    # historical rows predate the 10 digit rule
    @field_validator('mobile')
    @classmethod
    def _mobile(cls, value):
        return value or None

    @field_validator('created_at', mode='before')
    @classmethod
    def _ts(cls, value):
        return parse_timestamp(value)


class PresetFieldRecord(ApiModel):
    id: int
    field_key: str
    label: str
    is_enabled: bool = True
    order_index: int


class PresetRecord(ApiModel):
    id: int
    name: str
    is_active: bool = False
    fields: List[PresetFieldRecord] = []

    @field_validator('is_active', mode='before')
    @classmethod
    def _active(cls, value):
        return bool(value)


class SettingsRecord(ApiModel):
    wholesale_password_hash: Optional[str] = None
    master_password_hash: Optional[str] = None
    master_reset_used: bool = False


def _first_duplicate(values):
    seen = set()
    for value in values:
        if value in seen:
            return value
        seen.add(value)
    return None


class BackupIn(ApiModel):
    categories: List[CategoryRecord]
    customers: List[CustomerRecord]
    presets: List[PresetRecord] = []
    settings: Optional[SettingsRecord] = None

    @model_validator(mode='after')
    def _consistent(self):
        if sum(1 for p in self.presets if p.is_active) > 1:
            raise ValueError('backup has more than one active preset')
        # unique columns are checked here so a bad file fails before any delete
        checks = [
            ('category id', [c.id for c in self.categories]),
            ('customer id', [c.id for c in self.customers]),
            ('preset id', [p.id for p in self.presets]),
            ('preset name', [p.name for p in self.presets]),
            ('preset field id', [f.id for p in self.presets for f in p.fields]),
        ]
        for label, values in checks:
            duplicate = _first_duplicate(values)
            if duplicate is not None:
                raise ValueError(f'backup has duplicate {label} {duplicate!r}')
        return self
