from flask import Blueprint, jsonify, request
from models import db, Program, ProgramOutcome, AttainmentWeight, IndirectAttainment, Log
import logging
import traceback
from decimal import Decimal, InvalidOperation
from attainment_results import NotFound
from exceptions import InvalidConfigurationError
from po_attainment import (
    AttainmentWeights, calculate_program_po_attainment, calculate_batch_po_attainment, load_program_weights
)
from routes.utility_routes import not_found_response, computed_response, parse_bool, parse_course_statuses

api_bp = Blueprint('api', __name__, url_prefix='/api')


def _rollup_options():
    return {
        'academic_year': request.args.get('academic_year') or None,
        'course_statuses': parse_course_statuses(request.args.get('status')),
        'include_inactive_courses': parse_bool(request.args.get('include_inactive')),
    }


@api_bp.route('/program/<int:program_id>/po-attainment', methods=['GET'])
def program_po_attainment(program_id):
    """PO attainment for a program, rolled up from its courses' CO attainment"""
    options = _rollup_options()
    try:
        result = calculate_program_po_attainment(program_id, **options)
    except InvalidConfigurationError:
        raise
    except Exception as e:
        db.session.rollback()
        logging.error(f"Error calculating PO attainment for program {program_id}: {str(e)}\n{traceback.format_exc()}")
        return jsonify({'success': False, 'message': f'Error: {str(e)}'}), 500

    if isinstance(result, NotFound):
        return not_found_response(result)
    return computed_response(result)


@api_bp.route('/batch/<int:batch_id>/po-attainment', methods=['GET'])
def batch_po_attainment(batch_id):
    """PO attainment restricted to one batch's courses"""
    options = _rollup_options()
    try:
        result = calculate_batch_po_attainment(batch_id, **options)
    except InvalidConfigurationError:
        raise
    except Exception as e:
        db.session.rollback()
        logging.error(f"Error calculating PO attainment for batch {batch_id}: {str(e)}\n{traceback.format_exc()}")
        return jsonify({'success': False, 'message': f'Error: {str(e)}'}), 500

    if isinstance(result, NotFound):
        return not_found_response(result)
    return computed_response(result)


@api_bp.route('/program/<int:program_id>/attainment-weights', methods=['GET', 'POST'])
def attainment_weights(program_id):
    """Read or update the direct/indirect attainment weights of a program"""
    program = db.session.get(Program, program_id)
    if program is None:
        return jsonify({'success': False, 'error': 'NotFound', 'message': f'Program {program_id} not found'}), 404

    if request.method == 'GET':
        return jsonify({'success': True, 'data': load_program_weights(program.id).to_dict()})

    data = request.get_json(silent=True)
    if not data or 'direct_weight' not in data or 'indirect_weight' not in data:
        raise InvalidConfigurationError("Both direct and indirect weights are required")

    # Validation happens when the value object is built
    weights = AttainmentWeights(data['direct_weight'], data['indirect_weight'])

    try:
        record = AttainmentWeight.query.filter_by(program_id=program.id).first()
        if record is None:
            record = AttainmentWeight(program_id=program.id)
            db.session.add(record)
        record.direct_weight = weights.direct_weight
        record.indirect_weight = weights.indirect_weight
        db.session.add(Log(action="EDIT_ATTAINMENT_WEIGHTS",
                           description=f"Set attainment weights of program {program.code}: "
                                       f"direct {weights.direct_weight}, indirect {weights.indirect_weight}"))
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        logging.error(f"Error updating attainment weights for program {program_id}: {str(e)}")
        return jsonify({'success': False, 'message': 'Internal server error'}), 500

    return jsonify({'success': True, 'message': 'Attainment weights updated successfully', 'data': weights.to_dict()})


@api_bp.route('/program/<int:program_id>/indirect-attainment', methods=['POST'])
def record_indirect_attainment(program_id):
    """Record the survey-based (indirect) attainment percentage of a program outcome"""
    data = request.get_json(silent=True)
    if not data or 'po_id' not in data or 'percentage' not in data:
        raise InvalidConfigurationError("Missing required data: po_id and percentage")

    program_outcome = db.session.get(ProgramOutcome, data['po_id'])
    if program_outcome is None or program_outcome.program_id != program_id:
        return jsonify({'success': False, 'error': 'NotFound',
                        'message': f"Program outcome {data['po_id']} not found in program {program_id}"}), 404

    try:
        percentage = Decimal(str(data['percentage']))
    except (InvalidOperation, TypeError, ValueError):
        raise InvalidConfigurationError("Indirect attainment must be a number")
    if percentage < Decimal('0') or percentage > Decimal('100'):
        raise InvalidConfigurationError("Indirect attainment must be between 0 and 100")

    academic_year = data.get('academic_year') or ''
    try:
        record = IndirectAttainment.query.filter_by(
            program_id=program_id, po_id=program_outcome.id, academic_year=academic_year
        ).first()
        if record is None:
            record = IndirectAttainment(program_id=program_id, po_id=program_outcome.id, academic_year=academic_year)
            db.session.add(record)
        record.percentage = percentage.quantize(Decimal('0.01'))
        record.source = data.get('source')
        db.session.add(Log(action="SET_INDIRECT_ATTAINMENT",
                           description=f"Set indirect attainment of {program_outcome.code} to {percentage}%"))
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        logging.error(f"Error recording indirect attainment for PO {program_outcome.id}: {str(e)}")
        return jsonify({'success': False, 'message': f'Server error: {str(e)}'}), 500

    return jsonify({'success': True, 'data': {
        'po_id': program_outcome.id,
        'academic_year': academic_year,
        'percentage': float(record.percentage),
        'source': record.source,
    }})
