"""
Program outcome (PO) attainment: rolls class-level CO attainment up into POs.

For one PO and one course:
    course contribution = sum(CO attainment x mapping level) / sum(mapping level)
    course weight       = average mapping level of the course's mapped COs
Across courses:
    direct PO attainment = sum(contribution x weight) / sum(weight)

A course with no CO mapped (level > 0) to the PO is left out of that PO's
average entirely. The CO attainment used is the class-level percentage of
students meeting target.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

from flask import current_app

from models import (
    db, Program, Batch, Course, CourseOutcome, ProgramOutcome, COPOMapping,
    AttainmentWeight, IndirectAttainment
)
from attainment_results import NotFound, Computed
from co_attainment import calculate_class_co_attainment, round2, clamp_percentage, ZERO
from exceptions import InvalidConfigurationError

# Scale of the AttainmentWeight columns
WEIGHT_PLACES = Decimal('0.001')

STATUS_LEVEL3 = 'Level 3'
STATUS_LEVEL2 = 'Level 2'
STATUS_LEVEL1 = 'Level 1'
STATUS_NOT_ATTAINED = 'Not Attained'


@dataclass(frozen=True)
class AttainmentWeights:
    """Blend of direct (exam-based) and indirect (survey-based) attainment"""
    direct_weight: Decimal = Decimal('1.0')
    indirect_weight: Decimal = Decimal('0.0')

    def __post_init__(self):
        try:
            direct = Decimal(str(self.direct_weight)).quantize(WEIGHT_PLACES, rounding=ROUND_HALF_UP)
            indirect = Decimal(str(self.indirect_weight)).quantize(WEIGHT_PLACES, rounding=ROUND_HALF_UP)
        except (InvalidOperation, TypeError, ValueError):
            raise InvalidConfigurationError("Attainment weights must be numbers")
        if not (ZERO <= direct <= Decimal('1')) or not (ZERO <= indirect <= Decimal('1')):
            raise InvalidConfigurationError("Weights must be between 0 and 1")
        if direct + indirect != Decimal('1'):
            raise InvalidConfigurationError("Sum of direct and indirect weights must equal 1.0")
        object.__setattr__(self, 'direct_weight', direct)
        object.__setattr__(self, 'indirect_weight', indirect)

    def blend(self, direct, indirect=None):
        """Weighted attainment; a missing indirect value is taken to equal the direct one"""
        direct = Decimal(str(direct))
        indirect = direct if indirect is None else Decimal(str(indirect))
        return direct * self.direct_weight + indirect * self.indirect_weight

    def to_dict(self):
        return {'direct_weight': float(self.direct_weight), 'indirect_weight': float(self.indirect_weight)}


@dataclass(frozen=True)
class AttainmentBands:
    """NBA PO bands (inclusive lower bounds) and the program compliance threshold"""
    level1: Decimal = Decimal('60')
    level2: Decimal = Decimal('65')
    level3: Decimal = Decimal('80')
    compliance_threshold: Decimal = Decimal('60')

    def __post_init__(self):
        for name in ('level1', 'level2', 'level3', 'compliance_threshold'):
            value = Decimal(str(getattr(self, name)))
            if value < ZERO or value > Decimal('100'):
                raise InvalidConfigurationError(f"{name} must be between 0 and 100")
            object.__setattr__(self, name, value)
        if not (self.level1 < self.level2 < self.level3):
            raise InvalidConfigurationError("PO band thresholds must be strictly ascending")

    @classmethod
    def from_config(cls, config):
        return cls(
            level1=config.get('PO_LEVEL1_THRESHOLD', 60),
            level2=config.get('PO_LEVEL2_THRESHOLD', 65),
            level3=config.get('PO_LEVEL3_THRESHOLD', 80),
            compliance_threshold=config.get('NBA_COMPLIANCE_THRESHOLD', 60),
        )

    def classify(self, attainment):
        """Return (level, status) for a PO attainment percentage"""
        value = Decimal(str(attainment))
        if value >= self.level3:
            return 3, STATUS_LEVEL3
        if value >= self.level2:
            return 2, STATUS_LEVEL2
        if value >= self.level1:
            return 1, STATUS_LEVEL1
        return 0, STATUS_NOT_ATTAINED


def load_program_weights(program_id):
    """Stored weights for a program, or fully direct weighting when none are stored"""
    record = AttainmentWeight.query.filter_by(program_id=program_id).first()
    if record is None:
        return AttainmentWeights()
    return AttainmentWeights(record.direct_weight, record.indirect_weight)


def load_indirect_attainments(program_id, academic_year=None):
    """Map of PO id to stored indirect attainment percentage"""
    query = IndirectAttainment.query.filter_by(program_id=program_id)
    query = query.filter_by(academic_year=academic_year or '')
    return {record.po_id: Decimal(str(record.percentage)) for record in query.all()}


def _filter_courses(query, course_statuses, include_inactive_courses):
    if course_statuses:
        query = query.filter(Course.status.in_(list(course_statuses)))
    if not include_inactive_courses:
        query = query.filter(Course.is_active.is_(True))
    return query.order_by(Course.code)


def _default_statuses(course_statuses):
    if course_statuses is not None:
        return course_statuses
    try:
        return current_app.config.get('PO_DEFAULT_COURSE_STATUSES', ('COMPLETED',))
    except RuntimeError:
        return ('COMPLETED',)


def _default_bands(bands):
    if bands is not None:
        return bands
    try:
        return AttainmentBands.from_config(current_app.config)
    except RuntimeError:
        return AttainmentBands()


def _mappings_by_course_and_po(courses):
    """{(course_id, po_id): [mapping, ...]} for active level > 0 mappings of active COs"""
    course_ids = [course.id for course in courses]
    if not course_ids:
        return {}
    mappings = (
        COPOMapping.query
        .join(CourseOutcome, CourseOutcome.id == COPOMapping.co_id)
        .filter(
            COPOMapping.course_id.in_(course_ids),
            COPOMapping.is_active.is_(True),
            COPOMapping.level > 0,
            CourseOutcome.is_active.is_(True),
        )
        .all()
    )
    grouped = {}
    for mapping in mappings:
        grouped.setdefault((mapping.course_id, mapping.po_id), []).append(mapping)
    return grouped


def calculate_course_po_contribution(mappings, co_attainment_lookup):
    """
    Weighted contribution of one course to one PO.

    `mappings` are the course's (CO, level) mappings for the PO and
    `co_attainment_lookup(co_id)` returns a CO's attainment percentage or
    None. Returns None when no mapped CO has an attainment value, so that
    the course is left out rather than counted as zero.
    """
    numerator = ZERO
    level_sum = 0
    levels = []
    for co_id, level in mappings:
        if level <= 0:
            continue
        attainment = co_attainment_lookup(co_id)
        if attainment is None:
            continue
        numerator += Decimal(str(attainment)) * level
        level_sum += level
        levels.append(level)

    if level_sum == 0:
        return None
    return {
        'contribution': numerator / level_sum,
        'weight': Decimal(level_sum) / len(levels),
        'mapped_cos': len(levels),
        'level_sum': level_sum,
    }


def aggregate_po_attainment(course_contributions):
    """Weighted average of course contributions; 0 when no course contributes"""
    total_weight = sum((item['weight'] for item in course_contributions), ZERO)
    if total_weight <= ZERO:
        return ZERO
    weighted = sum((item['contribution'] * item['weight'] for item in course_contributions), ZERO)
    return weighted / total_weight


class _COAttainmentCache:
    """Request-scoped memo of class-level CO attainment percentages"""

    def __init__(self, academic_year=None):
        self.academic_year = academic_year
        self._values = {}

    def get(self, course_id, co_id):
        key = (course_id, co_id)
        if key not in self._values:
            result = calculate_class_co_attainment(course_id, co_id, academic_year=self.academic_year)
            if isinstance(result, NotFound):
                logging.warning(f"No class attainment for CO {co_id} in course {course_id}: {result.message}")
                self._values[key] = None
            else:
                self._values[key] = result.value['percentage_meeting_target']
        return self._values[key]


def calculate_po_attainments(pos, courses, weights, bands, academic_year=None, indirect_attainments=None):
    """PO attainment details for each PO using the given courses"""
    indirect_attainments = indirect_attainments or {}
    mappings = _mappings_by_course_and_po(courses)
    cache = _COAttainmentCache(academic_year)
    total_cos = {co.id for course in courses for co in course.course_outcomes if co.is_active}

    po_attainments = []
    for po in pos:
        contributions = []
        mapped_co_ids = set()
        all_levels = []
        for course in courses:
            course_mappings = mappings.get((course.id, po.id))
            if not course_mappings:
                continue
            contribution = calculate_course_po_contribution(
                [(m.co_id, m.level) for m in course_mappings],
                lambda co_id, course_id=course.id: cache.get(course_id, co_id)
            )
            if contribution is None:
                continue
            contribution['course_id'] = course.id
            contribution['course_code'] = course.code
            contributions.append(contribution)
            mapped_co_ids.update(m.co_id for m in course_mappings)
            all_levels.extend(m.level for m in course_mappings)

        direct = clamp_percentage(aggregate_po_attainment(contributions))
        indirect = indirect_attainments.get(po.id)
        indirect = direct if indirect is None else clamp_percentage(indirect)
        final = clamp_percentage(weights.blend(direct, indirect))
        level, status = bands.classify(final)
        avg_mapping_level = Decimal(sum(all_levels)) / len(all_levels) if all_levels else ZERO
        coverage = Decimal(len(mapped_co_ids)) / len(total_cos) * 100 if total_cos else ZERO

        po_attainments.append({
            'po_id': po.id,
            'po_code': po.code,
            'po_description': po.description,
            'target_attainment': round2(bands.level1),
            'direct_attainment': direct,
            'indirect_attainment': indirect,
            'overall_attainment': final,
            'attainment_level': level,
            'status': status,
            'co_count': len(total_cos),
            'mapped_cos': len(mapped_co_ids),
            'avg_mapping_level': avg_mapping_level.quantize(Decimal('0.1')),
            'co_coverage_factor': round2(coverage),
            'contributing_courses': [
                {
                    'course_id': item['course_id'],
                    'course_code': item['course_code'],
                    'contribution': round2(item['contribution']),
                    'weight': round2(item['weight']),
                    'mapped_cos': item['mapped_cos'],
                }
                for item in contributions
            ],
        })
    return po_attainments


def summarize_po_attainments(po_attainments, bands):
    """Program-level statistics over per-PO results"""
    total = len(po_attainments)
    attained = [po for po in po_attainments if po['overall_attainment'] >= bands.level1]
    if total:
        overall = sum((po['overall_attainment'] for po in po_attainments), ZERO) / total
        compliance_score = Decimal(len(attained)) / total * 100
    else:
        overall = ZERO
        compliance_score = ZERO
    compliance_score = round2(compliance_score)
    return {
        'target_attainment': round2(bands.level1),
        'overall_attainment': round2(overall),
        'nba_compliance_score': compliance_score,
        'total_pos': total,
        'attained_pos': len(attained),
        'level3_pos': sum(1 for po in po_attainments if po['attainment_level'] == 3),
        'level2_pos': sum(1 for po in po_attainments if po['attainment_level'] == 2),
        'level1_pos': sum(1 for po in po_attainments if po['attainment_level'] == 1),
        'not_attained_pos': sum(1 for po in po_attainments if po['attainment_level'] == 0),
        'is_compliant': total > 0 and compliance_score >= bands.compliance_threshold,
        'po_attainments': po_attainments,
        'recommendations': generate_recommendations(po_attainments),
        'calculated_at': datetime.now(),
    }


def calculate_program_po_attainment(program_id, academic_year=None, course_statuses=None,
                                    include_inactive_courses=False, weights=None, bands=None,
                                    indirect_attainments=None):
    """
    PO attainment for every active PO of a program across its batches' courses.

    `weights` defaults to the program's stored AttainmentWeight and
    `indirect_attainments` ({po_id: percentage}) to its stored indirect values.
    """
    program = db.session.get(Program, program_id)
    if program is None:
        return NotFound('Program', program_id)

    bands = _default_bands(bands)
    weights = weights if weights is not None else load_program_weights(program.id)
    if indirect_attainments is None:
        indirect_attainments = load_indirect_attainments(program.id, academic_year)

    pos = ProgramOutcome.query.filter_by(program_id=program.id, is_active=True).order_by(ProgramOutcome.code).all()
    courses = _filter_courses(
        Course.query.join(Batch, Batch.id == Course.batch_id).filter(Batch.program_id == program.id),
        _default_statuses(course_statuses),
        include_inactive_courses
    ).all()

    po_attainments = calculate_po_attainments(pos, courses, weights, bands, academic_year, indirect_attainments)
    summary = summarize_po_attainments(po_attainments, bands)
    summary.update({
        'program_id': program.id,
        'program_code': program.code,
        'program_name': program.name,
        'total_courses': len(courses),
        'weights': weights.to_dict(),
    })
    logging.info(f"PO attainment for program {program.code}: {summary['overall_attainment']}% overall, "
                 f"{summary['nba_compliance_score']}% compliance")
    return Computed(summary)


def calculate_batch_po_attainment(batch_id, academic_year=None, course_statuses=None,
                                  include_inactive_courses=False, weights=None, bands=None,
                                  indirect_attainments=None):
    """PO attainment of a program restricted to the courses of one batch"""
    batch = db.session.get(Batch, batch_id)
    if batch is None:
        return NotFound('Batch', batch_id)

    bands = _default_bands(bands)
    weights = weights if weights is not None else load_program_weights(batch.program_id)
    if indirect_attainments is None:
        indirect_attainments = load_indirect_attainments(batch.program_id, academic_year)

    pos = ProgramOutcome.query.filter_by(program_id=batch.program_id, is_active=True).order_by(ProgramOutcome.code).all()
    courses = _filter_courses(
        Course.query.filter(Course.batch_id == batch.id),
        _default_statuses(course_statuses),
        include_inactive_courses
    ).all()

    po_attainments = calculate_po_attainments(pos, courses, weights, bands, academic_year, indirect_attainments)
    summary = summarize_po_attainments(po_attainments, bands)
    summary.update({
        'batch_id': batch.id,
        'batch_name': batch.name,
        'batch_start_year': batch.start_year,
        'batch_end_year': batch.end_year,
        'program_id': batch.program.id,
        'program_code': batch.program.code,
        'program_name': batch.program.name,
        'total_courses': len(courses),
        'weights': weights.to_dict(),
    })
    return Computed(summary)


def generate_recommendations(po_attainments):
    """Plain-language suggestions for improving PO attainment"""
    if not po_attainments:
        return ['No program outcomes defined. Add POs and map course outcomes to them.']

    recommendations = []
    not_attained = [po for po in po_attainments if po['attainment_level'] == 0]
    level1 = [po for po in po_attainments if po['attainment_level'] == 1]

    if not_attained:
        recommendations.append(f"{len(not_attained)} PO(s) not attained. Review mapping levels and CO coverage.")
    if level1:
        recommendations.append(f"{len(level1)} PO(s) at minimum level. Consider strengthening CO-PO correlations.")

    avg_coverage = sum((po['co_coverage_factor'] for po in po_attainments), ZERO) / len(po_attainments)
    if avg_coverage < 80:
        recommendations.append('Low CO coverage detected. Map more COs to POs for better attainment.')

    avg_mapping_level = sum((po['avg_mapping_level'] for po in po_attainments), ZERO) / len(po_attainments)
    if avg_mapping_level < 2:
        recommendations.append('Low mapping levels detected. Use stronger correlations (Level 2-3) where appropriate.')

    if not recommendations:
        recommendations.append('Excellent PO attainment! Consider maintaining current mapping strategy.')
    return recommendations
