# routes.py - json api for settings, categories, customers, presets and backups
# every mutating endpoint goes through the wholesale gate

import json
import os
import uuid
from io import BytesIO

from flask import Blueprint, abort, current_app, jsonify, request, send_file, send_from_directory
from werkzeug.utils import secure_filename

import storage
from schemas import (
    PasswordIn, VerifyIn, ChangePasswordIn, ResetPasswordIn, MasterPasswordIn,
    CategoryIn, CategoryUpdate, CustomerIn, CustomerUpdate, CustomerQuery, BulkDeleteIn,
    PresetIn, PresetFieldsIn, BackupIn,
)
from security import wholesale_required
from models import db

bp = Blueprint('api', __name__)

PHOTO_EXTENSIONS = {'.jpg', '.jpeg', '.png', '.gif', '.webp', '.heic'}


def parse(schema, data=None):
    if data is None:
        data = request.get_json(silent=True) or {}
    return schema.model_validate(data)


# settings and wholesale password

@bp.route('/api/settings')
def get_settings():
    s = storage.get_settings()
    return jsonify({
        'hasPassword': bool(s and s.has_password),
        'hasMasterPassword': bool(s and s.has_master_password),
    })


@bp.route('/api/settings/setup', methods=['POST'])
def setup_password():
    body = parse(PasswordIn)
    s = storage.get_or_create_settings()
    if s.has_password:
        abort(400, 'Password already set')
    s.set_password(body.password)
    db.session.commit()
    current_app.logger.info('wholesale password set up')
    return jsonify({'success': True})


@bp.route('/api/settings/verify', methods=['POST'])
def verify_password():
    body = parse(VerifyIn)
    s = storage.get_settings()
    if s is None or not s.has_password:
        abort(400, 'Setup required')
    return jsonify({'valid': s.check_password(body.password)})


@bp.route('/api/settings/change-password', methods=['POST'])
def change_password():
    body = parse(ChangePasswordIn)
    s = storage.get_settings()
    if s is None or not s.has_password:
        abort(400, 'Setup required')
    if not s.check_password(body.old_password):
        abort(401, 'Invalid old password')
    s.set_password(body.new_password)
    db.session.commit()
    current_app.logger.info('wholesale password changed')
    return jsonify({'success': True})


@bp.route('/api/settings/reset', methods=['POST'])
def reset_password():
    body = parse(ResetPasswordIn)
    s = storage.get_settings()
    if s is None:
        abort(400, 'Setup required')
    if s.has_master_password and not s.check_master_password(body.master_password):
        abort(401, 'Invalid master password')
    s.wholesale_password_hash = None
    db.session.commit()
    current_app.logger.warning('wholesale password reset')
    return jsonify({'success': True})


@bp.route('/api/settings/master-password', methods=['POST'])
@wholesale_required
def set_master_password():
    body = parse(MasterPasswordIn)
    s = storage.get_or_create_settings()
    if s.has_master_password and not s.check_master_password(body.current_master_password):
        abort(401, 'Invalid master password')
    s.set_master_password(body.master_password)
    db.session.commit()
    current_app.logger.info('master password set')
    return jsonify({'success': True})


@bp.route('/api/settings/reset-master-once', methods=['POST'])
@wholesale_required
def reset_master_once():
    s = storage.get_settings()
    if s is None or not s.has_master_password:
        abort(400, 'No master password set')
    if s.master_reset_used:
        abort(403, 'Master password reset has already been used')
    s.master_password_hash = None
    s.master_reset_used = True
    db.session.commit()
    current_app.logger.warning('master password cleared with the one-time reset')
    return jsonify({'success': True})


# categories

@bp.route('/api/categories')
def list_categories():
    return jsonify([c.to_dict() for c in storage.list_categories()])


@bp.route('/api/categories/tree')
def category_tree():
    return jsonify(storage.build_category_tree(storage.list_categories()))


@bp.route('/api/categories/<int:id>')
def get_category(id):
    category = storage.get_category(id)
    if category is None:
        abort(404, 'Category not found')
    return jsonify(category.to_dict())


@bp.route('/api/categories', methods=['POST'])
@wholesale_required
def create_category():
    body = parse(CategoryIn)
    category = storage.create_category(body.to_columns())
    return jsonify(category.to_dict()), 201


@bp.route('/api/categories/<int:id>', methods=['PUT'])
@wholesale_required
def update_category(id):
    body = parse(CategoryUpdate)
    category = storage.update_category(id, body.to_columns(partial=True))
    if category is None:
        abort(404, 'Category not found')
    return jsonify(category.to_dict())


@bp.route('/api/categories/<int:id>', methods=['DELETE'])
@wholesale_required
def delete_category(id):
    storage.delete_category(id)
    return '', 204


# customers

@bp.route('/api/customers')
def list_customers():
    query = parse(CustomerQuery, request.args.to_dict())
    customers = storage.list_customers(query.search, query.date_from, query.date_to)
    return jsonify([c.to_dict() for c in customers])


@bp.route('/api/customers/<int:id>')
def get_customer(id):
    customer = storage.get_customer(id)
    if customer is None:
        abort(404, 'Customer not found')
    return jsonify(customer.to_dict())


@bp.route('/api/customers', methods=['POST'])
@wholesale_required
def create_customer():
    body = parse(CustomerIn)
    customer = storage.create_customer(body.to_columns())
    return jsonify(customer.to_dict()), 201


@bp.route('/api/customers/<int:id>', methods=['PUT'])
@wholesale_required
def update_customer(id):
    body = parse(CustomerUpdate)
    customer = storage.update_customer(id, body.to_columns(partial=True))
    if customer is None:
        abort(404, 'Customer not found')
    return jsonify(customer.to_dict())


@bp.route('/api/customers/<int:id>', methods=['DELETE'])
@wholesale_required
def delete_customer(id):
    storage.delete_customer(id)
    return '', 204


@bp.route('/api/customers/bulk-delete', methods=['POST'])
@wholesale_required
def bulk_delete_customers():
    body = parse(BulkDeleteIn)
    deleted = storage.delete_customers(body.ids)
    return jsonify({'success': True, 'deleted': deleted})


@bp.route('/api/customers/upload', methods=['POST'])
@wholesale_required
def upload_photo():
    photo = request.files.get('photo')
    if photo is None or not photo.filename:
        abort(400, 'No file uploaded')
    ext = os.path.splitext(secure_filename(photo.filename))[1].lower()
    if ext not in PHOTO_EXTENSIONS:
        abort(400, 'Only image files can be uploaded')

    folder = current_app.config['UPLOAD_FOLDER']
    os.makedirs(folder, exist_ok=True)
    name = f'{uuid.uuid4().hex}{ext}'
    photo.save(os.path.join(folder, name))
    return jsonify({'url': f'/uploads/{name}'})


@bp.route('/uploads/<path:filename>')
def uploaded_file(filename):
    return send_from_directory(current_app.config['UPLOAD_FOLDER'], filename)


# presets

@bp.route('/api/presets')
def list_presets():
    return jsonify([p.to_dict() for p in storage.list_presets()])


@bp.route('/api/presets/active')
def active_preset():
    preset = storage.get_active_preset()
    if preset is None:
        abort(404, 'No active preset')
    return jsonify(preset.to_dict())


@bp.route('/api/presets', methods=['POST'])
@wholesale_required
def create_preset():
    body = parse(PresetIn)
    preset = storage.create_preset(body.name)
    return jsonify(preset.to_dict()), 201


@bp.route('/api/presets/<int:id>/fields', methods=['PUT'])
@wholesale_required
def update_preset_fields(id):
    body = parse(PresetFieldsIn)
    preset = storage.update_preset_fields(id, body.fields)
    if preset is None:
        abort(404, 'Preset not found')
    return jsonify({'success': True})


@bp.route('/api/presets/<int:id>/activate', methods=['POST'])
@wholesale_required
def activate_preset(id):
    if not storage.activate_preset(id):
        abort(404, 'Preset not found')
    return jsonify({'success': True})


# backup and restore

@bp.route('/api/backup')
@wholesale_required
def backup():
    data = storage.export_backup()
    current_app.logger.info('backup exported')
    return send_file(
        BytesIO(json.dumps(data, indent=2).encode('utf-8')),
        mimetype='application/json',
        as_attachment=True,
        download_name='optician_backup.json',
    )


@bp.route('/api/restore', methods=['POST'])
@wholesale_required
def restore():
    upload = request.files.get('backup')
    if upload is None:
        abort(400, 'No backup file uploaded')
    try:
        data = json.loads(upload.read().decode('utf-8'))
    except (UnicodeDecodeError, ValueError):
        abort(400, 'Backup file is not valid JSON')
    if not isinstance(data, dict) or 'categories' not in data or 'customers' not in data:
        abort(400, 'Invalid backup file format')

    backup = parse(BackupIn, data)
    try:
        storage.restore_backup(backup)
    except Exception:
        current_app.logger.exception('restore failed')
        abort(500, 'Restore failed')
    return jsonify({'success': True})
