"""
Student roster routes.
"""
from flask import Blueprint, request, jsonify, g, current_app

from backend.audit import audit_log
from backend.auth import can_access_class
from backend.errors import DuplicateError, NotFoundError, PermissionDeniedError, ValidationError
from backend.services.student_directory import find_exact, next_index

student_bp = Blueprint('students', __name__)


def _authorized_store(grade, class_name):
    if not can_access_class(grade, class_name):
        raise PermissionDeniedError(f"You do not have access to Grade {grade} {class_name}.")
    return current_app.config['RECORD_STORE']


def _find_student(roster, student_id):
    for student in roster:
        if student["id"] == student_id:
            return student
    raise NotFoundError(f"Student '{student_id}' not found.")


@student_bp.route('/api/classes/<grade>/<class_name>/students', methods=['GET'])
def list_students(grade, class_name):
    store = _authorized_store(grade, class_name)
    students = sorted(store.fetch_students(grade, class_name), key=lambda s: s["index"])
    return jsonify({"students": students, "count": len(students)})


@student_bp.route('/api/classes/<grade>/<class_name>/students', methods=['POST'])
def add_student(grade, class_name):
    """Add a student. Without an index the next one in sequence is generated."""
    store = _authorized_store(grade, class_name)
    data = request.get_json(silent=True) or {}
    name = (data.get('name') or '').strip()
    if not name:
        raise ValidationError("Student name is required.")

    roster = store.fetch_students(grade, class_name)
    if find_exact(roster, name):
        raise DuplicateError(f'A student named "{name}" is already in this class.')

    index = (data.get('index') or '').strip() or next_index(roster, grade, class_name)
    student_id = store.add_student(grade, class_name, name, index)
    audit_log("ADD_STUDENT", f"{name} ({index}) to grade {grade}{class_name}", user=g.user_email)
    return jsonify({"id": student_id, "name": name, "index": index}), 201


@student_bp.route('/api/classes/<grade>/<class_name>/students/<student_id>', methods=['PUT'])
def update_student(grade, class_name, student_id):
    store = _authorized_store(grade, class_name)
    data = request.get_json(silent=True) or {}
    roster = store.fetch_students(grade, class_name)
    _find_student(roster, student_id)

    fields = {k: data[k] for k in ('name', 'index') if isinstance(data.get(k), str) and data[k].strip()}
    if not fields:
        raise ValidationError("Nothing to update.", "Send a name and/or index.")
    if 'name' in fields:
        clash = find_exact(roster, fields['name'])
        if clash and clash["id"] != student_id:
            raise DuplicateError(f'A student named "{fields["name"]}" is already in this class.')

    store.update_student(grade, class_name, student_id, fields)
    audit_log("UPDATE_STUDENT", f"{student_id} in grade {grade}{class_name}", user=g.user_email)
    return jsonify(_find_student(store.fetch_students(grade, class_name), student_id))


@student_bp.route('/api/classes/<grade>/<class_name>/students/<student_id>', methods=['DELETE'])
def delete_student(grade, class_name, student_id):
    store = _authorized_store(grade, class_name)
    student = _find_student(store.fetch_students(grade, class_name), student_id)
    store.remove_student(grade, class_name, student_id)
    audit_log("DELETE_STUDENT", f"{student['name']} from grade {grade}{class_name}", user=g.user_email)
    return jsonify({"status": "deleted", "id": student_id})
