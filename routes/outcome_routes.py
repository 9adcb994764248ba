from flask import Blueprint, request, jsonify
from models import db, CourseOutcome, ProgramOutcome, COPOMapping, COAttainment, Course, Batch, Log
import logging
from exceptions import InvalidConfigurationError, OutcomeInUseError

outcome_bp = Blueprint('outcome', __name__, url_prefix='/outcome')


def ensure_outcome_deletable(outcome):
    """A course outcome can only be removed once it has no CO-PO mappings and no attainment records"""
    mapping_count = COPOMapping.query.filter_by(co_id=outcome.id).count()
    attainment_count = COAttainment.query.filter_by(co_id=outcome.id).count()
    if mapping_count or attainment_count:
        raise OutcomeInUseError(
            f"Course outcome {outcome.code} has {mapping_count} CO-PO mapping(s) and "
            f"{attainment_count} attainment record(s)"
        )


@outcome_bp.route('/co/<int:co_id>', methods=['DELETE'])
def delete_course_outcome(co_id):
    """Delete a course outcome"""
    outcome = db.session.get(CourseOutcome, co_id)
    if outcome is None:
        return jsonify({'success': False, 'error': 'NotFound', 'message': f'Course outcome {co_id} not found'}), 404

    ensure_outcome_deletable(outcome)

    try:
        code = outcome.code
        course_id = outcome.course_id
        db.session.delete(outcome)
        db.session.add(Log(action="DELETE_COURSE_OUTCOME",
                           description=f"Deleted course outcome {code} from course {course_id}"))
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        logging.error(f"Error deleting course outcome {co_id}: {str(e)}")
        return jsonify({'success': False, 'message': 'An error occurred while deleting the course outcome'}), 500

    return jsonify({'success': True, 'message': f'Course outcome {code} deleted'})


def parse_mapping_level(value):
    try:
        level = int(value)
    except (TypeError, ValueError):
        raise InvalidConfigurationError("Mapping level must be an integer between 0 and 3")
    if str(level) != str(value).strip():
        raise InvalidConfigurationError("Mapping level must be an integer between 0 and 3")
    if level < 0 or level > 3:
        raise InvalidConfigurationError("Mapping level must be between 0 and 3")
    return level


@outcome_bp.route('/co-po-mapping', methods=['POST'])
def set_co_po_mapping():
    """Create or update the strength (0-3) of a CO-PO mapping"""
    data = request.get_json(silent=True)
    if not data or 'co_id' not in data or 'po_id' not in data or 'level' not in data:
        raise InvalidConfigurationError("Missing required data: co_id, po_id and level")

    level = parse_mapping_level(data['level'])
    outcome = db.session.get(CourseOutcome, data['co_id'])
    program_outcome = db.session.get(ProgramOutcome, data['po_id'])
    if outcome is None or program_outcome is None:
        return jsonify({'success': False, 'error': 'NotFound', 'message': 'Course outcome or program outcome not found'}), 404

    course = db.session.get(Course, outcome.course_id)
    batch = db.session.get(Batch, course.batch_id)
    if batch.program_id != program_outcome.program_id:
        raise InvalidConfigurationError("Program outcome does not belong to the course's program")

    try:
        mapping = COPOMapping.query.filter_by(co_id=outcome.id, po_id=program_outcome.id).first()
        if mapping is None:
            mapping = COPOMapping(course_id=course.id, co_id=outcome.id, po_id=program_outcome.id)
            db.session.add(mapping)
        mapping.level = level
        # Level 0 means not mapped
        mapping.is_active = level > 0
        db.session.add(Log(action="SET_CO_PO_MAPPING",
                           description=f"Set {outcome.code} -> {program_outcome.code} to level {level} in course {course.code}"))
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        logging.error(f"Error setting CO-PO mapping CO:{outcome.id} PO:{program_outcome.id}: {str(e)}")
        return jsonify({'success': False, 'message': f'Server error: {str(e)}'}), 500

    return jsonify({
        'success': True,
        'data': {'id': mapping.id, 'co_id': mapping.co_id, 'po_id': mapping.po_id,
                 'level': mapping.level, 'is_active': mapping.is_active}
    })
