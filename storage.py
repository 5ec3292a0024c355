# storage.py - data access for categories, customers, presets, settings and backups
# functions return None / False / 0 for missing rows, routes decide the status code

from collections import defaultdict
from datetime import datetime

from flask import current_app
from sqlalchemy import func

from models import (
    db, Category, Customer, FormPreset, FormPresetField, Settings, FOLDER,
)

BACKUP_VERSION = '1.0'

# fields every new preset starts with, in display order
DEFAULT_PRESET_FIELDS = [
    ('name', 'Full Name'),
    ('age', 'Age'),
    ('address', 'Address'),
    ('mobile', 'Mobile Number'),
    ('lensPowerCurrent', 'Current Lens Power'),
    ('lensPowerPrevious', 'Previous Lens Power'),
    ('notes', 'Notes'),
    ('photo', 'Prescription Photo'),
]


class StorageError(ValueError):
    """Request is well formed but conflicts with stored data."""


# settings

def get_settings():
    return db.session.execute(db.select(Settings).order_by(Settings.id).limit(1)).scalar()


def get_or_create_settings():
    settings = get_settings()
    if settings is None:
        settings = Settings()
        db.session.add(settings)
    return settings


# categories

def list_categories():
    return db.session.execute(
        db.select(Category).order_by(Category.sort_order, Category.name)
    ).scalars().all()


def build_category_tree(categories):
    """Nest a flat, already sorted category list.

    Nodes are kept in one id-indexed map and linked in list order, so
    children come out in the same order as the input. A node whose parent
    is missing is treated as a root. A parent loop in stored data is cut at
    the loop node first reached walking up from the list, and that node
    becomes a root, so every row appears exactly once.
    """
    nodes = {c.id: dict(c.to_dict(), children=[]) for c in categories}
    parent_of = {c.id: c.parent_id if c.parent_id in nodes else None for c in categories}

    settled = set()
    for c in categories:
        trail = []
        on_trail = set()
        node = c.id
        while node is not None and node not in settled and node not in on_trail:
            trail.append(node)
            on_trail.add(node)
            node = parent_of[node]
        if node in on_trail:
            parent_of[node] = None
        settled.update(trail)

    roots = []
    for c in categories:
        parent = parent_of[c.id]
        if parent is None:
            roots.append(nodes[c.id])
        else:
            nodes[parent]['children'].append(nodes[c.id])
    return roots


def get_category(category_id):
    return db.session.get(Category, category_id)


def _parent_map():
    rows = db.session.execute(db.select(Category.id, Category.parent_id)).all()
    return {cid: pid for cid, pid in rows}


def _check_parent(category_id, parent_id):
    if parent_id is None:
        return
    parent = db.session.get(Category, parent_id)
    if parent is None:
        raise StorageError('Parent category not found')
    if not parent.is_folder:
        raise StorageError('Parent must be a folder')
    if category_id is None:
        return
    # walk up from the new parent, stop on a loop in existing data
    parents = _parent_map()
    seen = set()
    node = parent_id
    while node is not None and node not in seen:
        if node == category_id:
            raise StorageError('A category cannot be moved inside itself')
        seen.add(node)
        node = parents.get(node)


def _apply_category(category, values):
    for key, value in values.items():
        setattr(category, key, value)
    # only items carry prices
    if category.type == FOLDER:
        category.customer_price = None
        category.wholesale_price = None
    category.updated_at = datetime.utcnow()


def create_category(values):
    _check_parent(None, values.get('parent_id'))
    category = Category()
    _apply_category(category, values)
    db.session.add(category)
    db.session.commit()
    return category


def update_category(category_id, values):
    category = get_category(category_id)
    if category is None:
        return None
    if 'parent_id' in values and values['parent_id'] != category.parent_id:
        _check_parent(category_id, values['parent_id'])
    if values.get('type') == 'ITEM' and category.type == FOLDER and has_children(category_id):
        raise StorageError('A folder with children cannot become an item')
    _apply_category(category, values)
    db.session.commit()
    return category


def has_children(category_id):
    return db.session.execute(
        db.select(func.count(Category.id)).where(Category.parent_id == category_id)
    ).scalar() > 0


def collect_subtree(category_id, children_of):
    """Ids of ``category_id`` and all its descendants, depth first."""
    found = []
    seen = set()
    stack = [category_id]
    while stack:
        node = stack.pop()
        if node in seen:
            continue
        seen.add(node)
        found.append(node)
        # reversed so the first child is visited first
        stack.extend(reversed(children_of.get(node, ())))
    return found


def delete_category(category_id):
    """Delete a category and everything below it, return the row count."""
    children_of = defaultdict(list)
    known = set()
    for cid, pid in db.session.execute(
        db.select(Category.id, Category.parent_id).order_by(Category.sort_order, Category.name)
    ):
        known.add(cid)
        if pid is not None:
            children_of[pid].append(cid)
    if category_id not in known:
        return 0

    doomed = collect_subtree(category_id, children_of)
    result = db.session.execute(
        db.delete(Category).where(Category.id.in_(doomed)),
        execution_options={'synchronize_session': False},
    )
    db.session.commit()
    current_app.logger.info('deleted category %s and %d descendants', category_id, len(doomed) - 1)
    return result.rowcount


# customers

def list_customers(search=None, date_from=None, date_to=None):
    query = db.select(Customer)
    if search:
        # % and _ in the query are literal characters
        escaped = search.lower().replace('\\', '\\\\').replace('%', '\\%').replace('_', '\\_')
        pattern = f'%{escaped}%'
        query = query.where(db.or_(
            func.lower(Customer.name).like(pattern, escape='\\'),
            Customer.mobile.like(pattern, escape='\\'),
            func.lower(Customer.address).like(pattern, escape='\\'),
        ))
    if date_from is not None:
        query = query.where(Customer.date >= date_from)
    if date_to is not None:
        query = query.where(Customer.date <= date_to)
    query = query.order_by(Customer.date.desc(), Customer.created_at.desc(), Customer.id.desc())
    return db.session.execute(query).scalars().all()


def get_customer(customer_id):
    return db.session.get(Customer, customer_id)


def create_customer(values):
    customer = Customer(**values)
    db.session.add(customer)
    db.session.commit()
    return customer


def update_customer(customer_id, values):
    customer = get_customer(customer_id)
    if customer is None:
        return None
    for key, value in values.items():
        setattr(customer, key, value)
    db.session.commit()
    return customer


def delete_customer(customer_id):
    return delete_customers([customer_id])


def delete_customers(ids):
    if not ids:
        return 0
    result = db.session.execute(
        db.delete(Customer).where(Customer.id.in_(ids)),
        execution_options={'synchronize_session': False},
    )
    db.session.commit()
    current_app.logger.info('deleted %d customer(s)', result.rowcount)
    return result.rowcount


# presets

def list_presets():
    return db.session.execute(db.select(FormPreset).order_by(FormPreset.id)).scalars().all()


def get_preset(preset_id):
    return db.session.get(FormPreset, preset_id)


def get_active_preset():
    return db.session.execute(
        db.select(FormPreset).where(FormPreset.is_active.is_(True)).limit(1)
    ).scalar()


def create_preset(name):
    exists = db.session.execute(
        db.select(FormPreset.id).where(FormPreset.name == name)
    ).scalar()
    if exists is not None:
        raise StorageError('Preset name already exists')
    preset = FormPreset(name=name, is_active=False)
    for index, (key, label) in enumerate(DEFAULT_PRESET_FIELDS):
        preset.fields.append(FormPresetField(
            field_key=key, label=label, is_enabled=True, order_index=index,
        ))
    db.session.add(preset)
    db.session.commit()
    return preset


def update_preset_fields(preset_id, updates):
    preset = get_preset(preset_id)
    if preset is None:
        return None
    by_id = {f.id: f for f in preset.fields}
    missing = [u.id for u in updates if u.id not in by_id]
    if missing:
        raise StorageError(f'Field {missing[0]} does not belong to preset {preset_id}')
    for update in updates:
        field = by_id[update.id]
        field.is_enabled = update.is_enabled
        field.order_index = update.order_index
        if update.label is not None:
            field.label = update.label
    db.session.commit()
    db.session.refresh(preset)
    return preset


def activate_preset(preset_id):
    if get_preset(preset_id) is None:
        return False
    # one statement flips every row, so there is never zero or two active
    db.session.execute(
        db.update(FormPreset).values(is_active=(FormPreset.id == preset_id)),
        execution_options={'synchronize_session': False},
    )
    db.session.commit()
    current_app.logger.info('activated preset %s', preset_id)
    return True


# backup and restore

def export_backup():
    settings = get_settings()
    return {
        'version': BACKUP_VERSION,
        'timestamp': datetime.utcnow().isoformat() + 'Z',
        'categories': [c.to_dict() for c in list_categories()],
        'customers': [c.to_dict() for c in list_customers()],
        'presets': [p.to_dict() for p in list_presets()],
        'settings': settings.to_dict() if settings else None,
    }


def restore_backup(backup):
    """Replace every table with the contents of a validated backup.

    Runs as one transaction and keeps the exported primary keys so parent
    and preset references stay valid. Nothing is changed if any step fails.
    """
    try:
        db.session.execute(db.delete(FormPresetField))
        db.session.execute(db.delete(FormPreset))
        db.session.execute(db.delete(Customer))
        db.session.execute(db.delete(Category))
        db.session.execute(db.delete(Settings))
        db.session.flush()
        # old instances would clash with the restored primary keys
        db.session.expunge_all()

        for record in backup.categories:
            category = Category(id=record.id)
            values = record.model_dump(exclude={'id', 'updated_at'})
            _apply_category(category, values)
            if record.updated_at is not None:
                category.updated_at = record.updated_at
            db.session.add(category)

        for record in backup.customers:
            values = record.model_dump()
            if values['created_at'] is None:
                values['created_at'] = datetime.utcnow()
            db.session.add(Customer(**values))

        for record in backup.presets:
            preset = FormPreset(id=record.id, name=record.name, is_active=record.is_active)
            for field in record.fields:
                preset.fields.append(FormPresetField(**field.model_dump()))
            db.session.add(preset)

        if backup.settings is not None:
            db.session.add(Settings(**backup.settings.model_dump()))

        db.session.flush()
        _reset_sequences()
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    current_app.logger.info(
        'restored backup: %d categories, %d customers, %d presets',
        len(backup.categories), len(backup.customers), len(backup.presets),
    )


def _reset_sequences():
    # postgres serial columns do not follow explicit ids
    if db.engine.dialect.name != 'postgresql':
        return
    for model in (Category, Customer, FormPreset, FormPresetField, Settings):
        table = model.__tablename__
        db.session.execute(db.text(
            f"SELECT setval(pg_get_serial_sequence('{table}', 'id'), "
            f"COALESCE((SELECT MAX(id) FROM {table}), 0) + 1, false)"
        ))
