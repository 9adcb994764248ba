from flask import Blueprint, request, jsonify
from models import db, Course, Log
import logging
from exceptions import InvalidConfigurationError
from routes.utility_routes import json_ready

course_bp = Blueprint('course', __name__, url_prefix='/course')

SETTING_FIELDS = ('target_percentage', 'level1_threshold', 'level2_threshold', 'level3_threshold')


def _settings_dict(course):
    return json_ready({
        'course_id': course.id,
        'course_code': course.code,
        'target_percentage': course.target_percentage,
        'level1_threshold': course.level1_threshold,
        'level2_threshold': course.level2_threshold,
        'level3_threshold': course.level3_threshold,
    })


@course_bp.route('/<int:course_id>/attainment-settings', methods=['GET', 'POST'])
def attainment_settings(course_id):
    """Read or update a course's target percentage and level thresholds"""
    course = db.session.get(Course, course_id)
    if course is None:
        return jsonify({'success': False, 'error': 'NotFound', 'message': f'Course {course_id} not found'}), 404

    if request.method == 'GET':
        return jsonify({'success': True, 'data': _settings_dict(course)})

    data = request.get_json(silent=True)
    if not data:
        raise InvalidConfigurationError("No data provided")

    unknown = [key for key in data if key not in SETTING_FIELDS]
    if unknown:
        raise InvalidConfigurationError(f"Unknown settings: {', '.join(unknown)}")

    # Raises InvalidConfigurationError, which the app turns into a 400 after rolling back
    course.apply_attainment_settings(**{field: data.get(field) for field in SETTING_FIELDS})

    try:
        log = Log(action="EDIT_ATTAINMENT_SETTINGS",
                  description=f"Updated attainment settings of course {course.code}: "
                              f"target {course.target_percentage}, thresholds "
                              f"{course.level1_threshold}/{course.level2_threshold}/{course.level3_threshold}")
        db.session.add(log)
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        logging.error(f"Error updating attainment settings for course {course_id}: {str(e)}")
        return jsonify({'success': False, 'message': 'An error occurred while updating the settings'}), 500

    return jsonify({'success': True, 'message': 'Attainment settings updated', 'data': _settings_dict(course)})
