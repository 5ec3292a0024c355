# this file defines the database structure for the optical shop
# it uses 6 tables: users, settings, categories, customers, presets and preset fields

from flask_sqlalchemy import SQLAlchemy
from flask_login import UserMixin
from werkzeug.security import generate_password_hash, check_password_hash
from datetime import datetime
import string

db = SQLAlchemy()

FOLDER = 'FOLDER'
ITEM = 'ITEM'

# the 16 prescription fields: new/old x right/left x sph/cyl/axis/add
PRESCRIPTION_FIELDS = [
    f'{age}_power_{side}_{part}'
    for age in ('new', 'old')
    for side in ('right', 'left')
    for part in ('sph', 'cyl', 'axis', 'add')
]


def hash_password(password):
    return generate_password_hash(password)


def verify_password(password, pwhash):
    # empty hash means "not configured", never a match
    if not password or not pwhash:
        return False
    if '$' not in pwhash and ':' in pwhash:
        return _check_legacy_hash(pwhash, password)
    return check_password_hash(pwhash, password)


def _check_legacy_hash(pwhash, password):
    # "<salt>:<hex key>" from the previous server is scrypt n=16384 r=8 p=1
    # with a 64 byte key, the same parameters werkzeug writes as scrypt:16384:8:1
    salt, _, key = pwhash.partition(':')
    if not salt or len(key) != 128 or any(c not in string.hexdigits for c in key):
        return False
    return check_password_hash(f'scrypt:16384:8:1${salt}${key.lower()}', password)


def to_camel(name):
    head, *rest = name.split('_')
    return head + ''.join(part.title() for part in rest)


def _iso(value):
    return value.isoformat() if value is not None else None


# table 1: users - people who signed in through the oauth front door
class User(UserMixin, db.Model):
    __tablename__ = 'users'

    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(255), unique=True, nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    def __repr__(self):
        return f'<User {self.email}>'


# table 2: settings - single row holding the wholesale and master password hashes
class Settings(db.Model):
    __tablename__ = 'settings'

    id = db.Column(db.Integer, primary_key=True)
    wholesale_password_hash = db.Column(db.String(255))
    master_password_hash = db.Column(db.String(255))
    master_reset_used = db.Column(db.Boolean, nullable=False, default=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    @property
    def has_password(self):
        return bool(self.wholesale_password_hash)

    @property
    def has_master_password(self):
        return bool(self.master_password_hash)

    def set_password(self, password):
        self.wholesale_password_hash = hash_password(password)

    def check_password(self, password):
        return verify_password(password, self.wholesale_password_hash)

    def set_master_password(self, password):
        self.master_password_hash = hash_password(password)

    def check_master_password(self, password):
        return verify_password(password, self.master_password_hash)

    def to_dict(self):
        return {
            'id': self.id,
            'wholesalePasswordHash': self.wholesale_password_hash,
            'masterPasswordHash': self.master_password_hash,
            'masterResetUsed': self.master_reset_used,
            'updatedAt': _iso(self.updated_at),
        }


# table 3: categories - folder/item tree of lens products with dual pricing
# parent_id is resolved in application code, there is no database cascade
class Category(db.Model):
    __tablename__ = 'categories'

    id = db.Column(db.Integer, primary_key=True)
    parent_id = db.Column(db.Integer, index=True)
    name = db.Column(db.String(200), nullable=False)
    type = db.Column(db.String(10), nullable=False, default=FOLDER)
    customer_price = db.Column(db.Float)   # retail price, items only
    wholesale_price = db.Column(db.Float)  # trade price, items only
    sort_order = db.Column(db.Integer, nullable=False, default=0)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    @property
    def is_folder(self):
        return self.type == FOLDER

    def to_dict(self):
        return {
            'id': self.id,
            'parentId': self.parent_id,
            'name': self.name,
            'type': self.type,
            'customerPrice': self.customer_price,
            'wholesalePrice': self.wholesale_price,
            'sortOrder': self.sort_order,
            'updatedAt': _iso(self.updated_at),
        }

    def __repr__(self):
        return f'<Category {self.type} {self.name}>'


# table 4: customers - visit details and prescriptions
class Customer(db.Model):
    __tablename__ = 'customers'

    id = db.Column(db.Integer, primary_key=True)
    date = db.Column(db.Date, nullable=False, index=True)  # visit date
    name = db.Column(db.String(200), nullable=False)
    age = db.Column(db.Integer)
    address = db.Column(db.Text)
    mobile = db.Column(db.String(20))
    new_power_right_sph = db.Column(db.String(20))
    new_power_right_cyl = db.Column(db.String(20))
    new_power_right_axis = db.Column(db.String(20))
    new_power_right_add = db.Column(db.String(20))
    new_power_left_sph = db.Column(db.String(20))
    new_power_left_cyl = db.Column(db.String(20))
    new_power_left_axis = db.Column(db.String(20))
    new_power_left_add = db.Column(db.String(20))
    old_power_right_sph = db.Column(db.String(20))
    old_power_right_cyl = db.Column(db.String(20))
    old_power_right_axis = db.Column(db.String(20))
    old_power_right_add = db.Column(db.String(20))
    old_power_left_sph = db.Column(db.String(20))
    old_power_left_cyl = db.Column(db.String(20))
    old_power_left_axis = db.Column(db.String(20))
    old_power_left_add = db.Column(db.String(20))
    notes = db.Column(db.Text)
    prescription_photo_path = db.Column(db.String(500))
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    def to_dict(self):
        data = {
            'id': self.id,
            'date': _iso(self.date),
            'name': self.name,
            'age': self.age,
            'address': self.address,
            'mobile': self.mobile,
        }
        for field in PRESCRIPTION_FIELDS:
            data[to_camel(field)] = getattr(self, field)
        data['notes'] = self.notes
        data['prescriptionPhotoPath'] = self.prescription_photo_path
        data['createdAt'] = _iso(self.created_at)
        return data

    def __repr__(self):
        return f'<Customer {self.name}>'


# table 5: form presets - named layouts for the customer entry form
class FormPreset(db.Model):
    __tablename__ = 'form_presets'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), unique=True, nullable=False)
    is_active = db.Column(db.Boolean, nullable=False, default=False)

    fields = db.relationship(
        'FormPresetField',
        backref='preset',
        order_by='FormPresetField.order_index',
        cascade='all, delete-orphan',
        lazy=True,
    )

    def to_dict(self, with_fields=True):
        data = {'id': self.id, 'name': self.name, 'isActive': self.is_active}
        if with_fields:
            data['fields'] = [f.to_dict() for f in self.fields]
        return data


# table 6: preset fields - one toggleable input of a preset
class FormPresetField(db.Model):
    __tablename__ = 'form_preset_fields'

    id = db.Column(db.Integer, primary_key=True)
    preset_id = db.Column(db.Integer, db.ForeignKey('form_presets.id'), nullable=False, index=True)
    field_key = db.Column(db.String(50), nullable=False)  # e.g. "age", "address"
    label = db.Column(db.String(100), nullable=False)
    is_enabled = db.Column(db.Boolean, nullable=False, default=True)
    order_index = db.Column(db.Integer, nullable=False)

    def to_dict(self):
        return {
            'id': self.id,
            'presetId': self.preset_id,
            'fieldKey': self.field_key,
            'label': self.label,
            'isEnabled': self.is_enabled,
            'orderIndex': self.order_index,
        }
