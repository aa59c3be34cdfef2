from __future__ import annotations
"""Supporting documents for expenditures and retirements, stored under UPLOAD_FOLDER."""
import os
import uuid
from datetime import datetime, timezone
from typing import Optional, Type
from flask import current_app
from werkzeug.datastructures import FileStorage
from werkzeug.utils import secure_filename
from budget_tracker import get_db
from budget_tracker.errors import AppError, EntityNotFound, Unauthorized
from budget_tracker.models.expenditure import Expenditure, Attachment
from budget_tracker.models.retirement import ExpenditureRetirement, RetirementAttachment

ALLOWED_MIME_TYPES = frozenset({'application/pdf', 'image/jpeg', 'image/jpg', 'image/png', 'image/gif'})
MAX_FILE_SIZE = 10 * 1024 * 1024


def _file_size(file: FileStorage) -> int:
    stream = file.stream
    stream.seek(0, os.SEEK_END)
    size = stream.tell()
    stream.seek(0)
    return size


def validate_file(file: Optional[FileStorage]) -> int:
    """Return the file size in bytes or raise 400."""
    if file is None or not file.filename:
        raise AppError('No file uploaded', 400)
    if file.mimetype not in ALLOWED_MIME_TYPES:
        raise AppError('Invalid file type. Allowed types: PDF, JPEG, JPG, PNG, GIF', 400)
    size = _file_size(file)
    if size > MAX_FILE_SIZE:
        raise AppError('File size exceeds 10MB limit', 400)
    return size


def _store(file: FileStorage, subdir: str) -> str:
    folder = os.path.join(current_app.config['UPLOAD_FOLDER'], subdir)
    os.makedirs(folder, exist_ok=True)
    name = f'{uuid.uuid4().hex}_{secure_filename(file.filename) or "upload"}'
    path = os.path.join(folder, name)
    file.save(path)
    return path


def _add(model: Type, parent_field: str, parent_id: int, file: FileStorage, user_id: int,
         document_type: Optional[str], description: Optional[str], subdir: str):
    size = validate_file(file)
    session = get_db()
    path = _store(file, subdir)
    att = model(**{parent_field: parent_id}, file_name=file.filename, file_path=path, file_type=file.mimetype,
                file_size=size, document_type=document_type, description=description, uploaded_by=user_id)
    session.add(att)
    try:
        session.commit()
    except Exception:
        session.rollback()
        _unlink(path)
        raise
    return att


def add_expenditure_attachment(expenditure_id: int, file, user_id: int, document_type=None, description=None) -> Attachment:
    if not get_db().get(Expenditure, expenditure_id):
        raise EntityNotFound('Expenditure')
    return _add(Attachment, 'expenditure_id', expenditure_id, file, user_id, document_type, description, 'expenditures')


def add_retirement_attachment(retirement_id: int, file, user_id: int, document_type=None, description=None) -> RetirementAttachment:
    if not get_db().get(ExpenditureRetirement, retirement_id):
        raise EntityNotFound('Retirement')
    return _add(RetirementAttachment, 'retirement_id', retirement_id, file, user_id, document_type, description, 'retirements')


def _unlink(path: str):
    try:
        os.remove(path)
    except OSError:
        current_app.logger.exception('could not remove attachment file %s', path)


def delete_attachment(model: Type, attachment_id: int, user_id: int, is_admin: bool = False):
    session = get_db()
    att = session.get(model, attachment_id)
    if not att:
        raise EntityNotFound('Attachment')
    if att.uploaded_by != user_id and not is_admin:
        raise Unauthorized('You can only delete your own attachments')
    path = att.file_path
    session.delete(att)
    session.commit()
    _unlink(path)


def verify_retirement_attachment(attachment_id: int, user_id: int, verified: bool = True, notes: Optional[str] = None) -> RetirementAttachment:
    session = get_db()
    att = session.get(RetirementAttachment, attachment_id)
    if not att:
        raise EntityNotFound('Attachment')
    att.verified = bool(verified)
    att.verified_by = user_id if verified else None
    att.verified_at = datetime.now(timezone.utc) if verified else None
    att.verification_notes = notes
    session.commit()
    return att
