from flask import Blueprint, request, jsonify
from models import db
import logging
import traceback
from attainment_results import NotFound
from co_attainment import (
    calculate_student_co_attainment, calculate_class_co_attainment,
    calculate_course_attainment, generate_co_report, batch_save_co_attainments
)
from routes.utility_routes import json_ready, not_found_response, computed_response, parse_optional_int

calculation_bp = Blueprint('calculation', __name__, url_prefix='/calculation')


@calculation_bp.route('/course/<int:course_id>')
def course_attainment(course_id):
    """CO attainment of every CO in a course with the per-student breakdown"""
    academic_year = request.args.get('academic_year') or None
    section_id = parse_optional_int(request.args.get('section_id'), 'section_id')

    result = calculate_course_attainment(course_id, academic_year=academic_year, section_id=section_id)
    if isinstance(result, NotFound):
        return not_found_response(result)
    return computed_response(result)


@calculation_bp.route('/course/<int:course_id>/co/<int:co_id>')
def class_co_attainment(course_id, co_id):
    """Share of the class meeting target for one CO and the resulting level"""
    academic_year = request.args.get('academic_year') or None
    section_id = parse_optional_int(request.args.get('section_id'), 'section_id')

    result = calculate_class_co_attainment(course_id, co_id, academic_year=academic_year, section_id=section_id)
    if isinstance(result, NotFound):
        return not_found_response(result)
    return computed_response(result)


@calculation_bp.route('/course/<int:course_id>/co/<int:co_id>/report')
def co_report(course_id, co_id):
    result = generate_co_report(course_id, co_id, academic_year=request.args.get('academic_year') or None)
    if isinstance(result, NotFound):
        return not_found_response(result)
    return computed_response(result)


@calculation_bp.route('/course/<int:course_id>/co/<int:co_id>/student/<int:student_id>')
def student_co_attainment(course_id, co_id, student_id):
    """A single student's attainment for one CO"""
    result = calculate_student_co_attainment(
        course_id, co_id, student_id,
        academic_year=request.args.get('academic_year') or None,
        section_id=parse_optional_int(request.args.get('section_id'), 'section_id'),
        assessment_id=parse_optional_int(request.args.get('assessment_id'), 'assessment_id')
    )
    if isinstance(result, NotFound):
        return not_found_response(result)
    return computed_response(result)


@calculation_bp.route('/course/<int:course_id>/save', methods=['POST'])
def save_course_attainments(course_id):
    """Recalculate and store CO attainment for every enrolled student of a course"""
    data = request.get_json(silent=True) or {}
    academic_year = data.get('academic_year') or None
    semester = data.get('semester') or None

    try:
        result = batch_save_co_attainments(course_id, academic_year=academic_year, semester=semester)
    except Exception as e:
        db.session.rollback()
        logging.error(f"Error batch saving CO attainments for course {course_id}: {str(e)}\n{traceback.format_exc()}")
        return jsonify({'success': False, 'message': f'Server error: {str(e)}'}), 500

    if isinstance(result, NotFound):
        return not_found_response(result)

    summary = result.value
    return jsonify({
        'success': not summary['failed'],
        'message': f"Saved {summary['succeeded']} of {summary['total']} CO attainment records",
        'data': json_ready(summary)
    })
