"""
Course outcome (CO) attainment calculations.

Two-stage NBA model:
  Stage 1 - each student's percentage on the questions mapped to a CO is
            compared with the course target (met / not met).
  Stage 2 - the share of students meeting the target is bucketed into an
            attainment level 0-3 using the course's ascending thresholds.

Unattempted questions (no StudentMark row, or obtained_marks of None) are
left out of both the numerator and the denominator of a student's percentage.
"""

import logging
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError

from models import (
    db, Course, CourseOutcome, Assessment, Question, QuestionCOMapping,
    Enrollment, Student, StudentMark, COAttainment, Log
)
from attainment_results import NotFound, Computed

ZERO = Decimal('0')
HUNDRED = Decimal('100')
TWO_PLACES = Decimal('0.01')


def round2(value):
    """Round a Decimal-compatible value to 2 places using half-up rounding"""
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def clamp_percentage(value):
    """Clamp a percentage into [0, 100] and round it to 2 places"""
    value = round2(value)
    if value < ZERO:
        return round2(ZERO)
    if value > HUNDRED:
        return round2(HUNDRED)
    return value


def safe_percentage(numerator, denominator):
    """numerator / denominator * 100, with 0 for an empty denominator"""
    numerator = Decimal(str(numerator))
    denominator = Decimal(str(denominator))
    if denominator <= ZERO:
        return round2(ZERO)
    return clamp_percentage(numerator / denominator * HUNDRED)


def classify_attainment_level(percentage_meeting_target, level1_threshold, level2_threshold, level3_threshold):
    """
    Map the share of students meeting target onto an attainment level.

    Thresholds are inclusive lower bounds checked from the highest level
    down, so a value equal to a threshold gets the higher level.
    """
    value = Decimal(str(percentage_meeting_target))
    if value >= Decimal(str(level3_threshold)):
        return 3
    if value >= Decimal(str(level2_threshold)):
        return 2
    if value >= Decimal(str(level1_threshold)):
        return 1
    return 0


def get_co_questions(course_id, co_id, section_id=None, assessment_id=None):
    """Active questions of active assessments in the course that are actively mapped to the CO"""
    query = (
        Question.query
        .join(QuestionCOMapping, QuestionCOMapping.question_id == Question.id)
        .join(Assessment, Assessment.id == Question.assessment_id)
        .filter(
            QuestionCOMapping.co_id == co_id,
            QuestionCOMapping.is_active.is_(True),
            Question.is_active.is_(True),
            Assessment.course_id == course_id,
            Assessment.is_active.is_(True),
        )
    )
    if section_id is not None:
        # Course-wide assessments (no section) apply to every section
        query = query.filter(or_(Assessment.section_id == section_id, Assessment.section_id.is_(None)))
    if assessment_id is not None:
        query = query.filter(Assessment.id == assessment_id)
    return query.order_by(Question.assessment_id, Question.number).all()


def aggregate_co_marks(course_id, co_id, student_id, academic_year=None, section_id=None,
                       assessment_id=None, questions=None):
    """
    Sum a student's obtained and max marks over the questions mapped to one CO.

    Returns a dict with `obtained`, `max`, `attempted` and `total`. Every
    mapped question counts toward `total`; only attempted ones add to
    `obtained`, `max` and `attempted`. With no mapped questions all four
    values are zero.
    """
    if questions is None:
        questions = get_co_questions(course_id, co_id, section_id=section_id, assessment_id=assessment_id)

    aggregate = {'obtained': ZERO, 'max': ZERO, 'attempted': 0, 'total': len(questions)}
    if not questions:
        return aggregate

    question_ids = [q.id for q in questions]
    marks_query = StudentMark.query.filter(
        StudentMark.student_id == student_id,
        StudentMark.question_id.in_(question_ids)
    )
    if academic_year is not None:
        marks_query = marks_query.filter(StudentMark.academic_year == academic_year)
    marks_by_question = {mark.question_id: mark for mark in marks_query.all()}

    for question in questions:
        mark = marks_by_question.get(question.id)
        # Explicit None check so that a valid score of 0 still counts as attempted
        if mark is None or mark.obtained_marks is None:
            continue
        max_marks = mark.max_marks if mark.max_marks is not None else question.max_marks
        aggregate['obtained'] += Decimal(str(mark.obtained_marks))
        aggregate['max'] += Decimal(str(max_marks))
        aggregate['attempted'] += 1

    return aggregate


def _student_result(co, course, student_id, aggregate):
    percentage = safe_percentage(aggregate['obtained'], aggregate['max'])
    return {
        'student_id': student_id,
        'co_id': co.id,
        'co_code': co.code,
        'percentage': percentage,
        'met_target': percentage >= Decimal(str(course.target_percentage)),
        'total_obtained_marks': round2(aggregate['obtained']),
        'total_max_marks': round2(aggregate['max']),
        'attempted_questions': aggregate['attempted'],
        'total_questions': aggregate['total'],
    }


def _load_course_and_co(course_id, co_id):
    course = db.session.get(Course, course_id)
    if course is None:
        return NotFound('Course', course_id)
    co = db.session.get(CourseOutcome, co_id)
    if co is None or co.course_id != course.id:
        return NotFound('CourseOutcome', co_id)
    return course, co


def calculate_student_co_attainment(course_id, co_id, student_id, academic_year=None, section_id=None,
                                    assessment_id=None):
    """Stage 1: a student's percentage and target-met flag for one CO"""
    loaded = _load_course_and_co(course_id, co_id)
    if isinstance(loaded, NotFound):
        return loaded
    course, co = loaded

    aggregate = aggregate_co_marks(course.id, co.id, student_id, academic_year=academic_year,
                                   section_id=section_id, assessment_id=assessment_id)
    return Computed(_student_result(co, course, student_id, aggregate))


def get_enrolled_students(course_id, section_id=None):
    """Students with an active enrollment in the course, ordered by roll number"""
    query = (
        Student.query
        .join(Enrollment, Enrollment.student_id == Student.id)
        .filter(Enrollment.course_id == course_id, Enrollment.is_active.is_(True))
    )
    if section_id is not None:
        query = query.filter(Student.section_id == section_id)
    return query.order_by(Student.student_id).all()


def _class_result(course, co, student_results):
    total_students = len(student_results)
    meeting_target = sum(1 for result in student_results if result['met_target'])
    percentage_meeting_target = safe_percentage(meeting_target, total_students)
    return {
        'co_id': co.id,
        'co_code': co.code,
        'co_description': co.description,
        'total_students': total_students,
        'students_meeting_target': meeting_target,
        'percentage_meeting_target': percentage_meeting_target,
        'target_percentage': round2(course.target_percentage),
        'level1_threshold': round2(course.level1_threshold),
        'level2_threshold': round2(course.level2_threshold),
        'level3_threshold': round2(course.level3_threshold),
        'attainment_level': classify_attainment_level(
            percentage_meeting_target,
            course.level1_threshold,
            course.level2_threshold,
            course.level3_threshold
        ),
    }


def _student_results_for_co(course, co, students, academic_year=None, section_id=None):
    # Questions are shared by every student of the CO, so load them once
    questions = get_co_questions(course.id, co.id, section_id=section_id)
    results = []
    for student in students:
        aggregate = aggregate_co_marks(course.id, co.id, student.id, academic_year=academic_year,
                                       questions=questions)
        result = _student_result(co, course, student.id, aggregate)
        result['student_name'] = student.name
        result['student_roll_no'] = student.student_id
        results.append(result)
    return results


def calculate_class_co_attainment(course_id, co_id, academic_year=None, section_id=None):
    """Stage 2: share of enrolled students meeting target for one CO, and its level"""
    loaded = _load_course_and_co(course_id, co_id)
    if isinstance(loaded, NotFound):
        return loaded
    course, co = loaded

    students = get_enrolled_students(course.id, section_id)
    student_results = _student_results_for_co(course, co, students, academic_year, section_id)
    return Computed(_class_result(course, co, student_results))


def calculate_course_attainment(course_id, academic_year=None, section_id=None):
    """Class attainment of every active CO in a course plus the per-student breakdown"""
    course = db.session.get(Course, course_id)
    if course is None:
        return NotFound('Course', course_id)

    cos = (
        CourseOutcome.query
        .filter_by(course_id=course.id, is_active=True)
        .order_by(CourseOutcome.code)
        .all()
    )
    students = get_enrolled_students(course.id, section_id)

    co_attainments = []
    student_attainments = []
    for co in cos:
        student_results = _student_results_for_co(course, co, students, academic_year, section_id)
        co_attainments.append(_class_result(course, co, student_results))
        student_attainments.extend(student_results)

    level_counts = {f'level{level}_count': 0 for level in range(4)}
    for co_result in co_attainments:
        level_counts[f"level{co_result['attainment_level']}_count"] += 1

    return Computed({
        'course_id': course.id,
        'course_code': course.code,
        'course_name': course.name,
        'academic_year': academic_year,
        'target_percentage': round2(course.target_percentage),
        'level1_threshold': round2(course.level1_threshold),
        'level2_threshold': round2(course.level2_threshold),
        'level3_threshold': round2(course.level3_threshold),
        'total_students': len(students),
        'overall_attainment': level_counts,
        'co_attainments': co_attainments,
        'student_attainments': student_attainments,
        'calculated_at': datetime.now(),
    })


def generate_co_report(course_id, co_id, academic_year=None):
    """Class attainment for one CO with the student breakdown and two illustrative cases"""
    loaded = _load_course_and_co(course_id, co_id)
    if isinstance(loaded, NotFound):
        return loaded
    course, co = loaded

    students = get_enrolled_students(course.id)
    breakdown = _student_results_for_co(course, co, students, academic_year)

    standard_case = next(
        (r for r in breakdown
         if r['total_questions'] and r['attempted_questions'] == r['total_questions'] and r['met_target']),
        None
    )
    unattempted_case = next(
        (r for r in breakdown if r['attempted_questions'] < r['total_questions']),
        None
    )
    return Computed({
        'class_attainment': _class_result(course, co, breakdown),
        'student_breakdown': breakdown,
        'examples': {
            'standard_case': standard_case,
            'unattempted_case': unattempted_case,
        },
    })


def resolve_academic_year(course, academic_year=None):
    """Academic year used as part of the stored attainment key"""
    if academic_year:
        return academic_year
    return course.academic_year or ''


def upsert_co_attainment(course_id, co_id, student_id, academic_year, percentage, met_target, semester=None):
    """
    Insert or overwrite the stored attainment for (course, CO, student, academic year).

    Commits on success. If a concurrent writer inserted the same key first,
    the insert is rolled back and the existing row is updated instead.
    """
    key = dict(course_id=course_id, co_id=co_id, student_id=student_id, academic_year=academic_year)
    percentage = clamp_percentage(percentage)

    record = COAttainment.query.filter_by(**key).first()
    if record is None:
        record = COAttainment(**key, percentage=percentage, met_target=met_target, semester=semester)
        db.session.add(record)
        try:
            db.session.commit()
            return record
        except IntegrityError:
            db.session.rollback()
            record = COAttainment.query.filter_by(**key).one()

    record.percentage = percentage
    record.met_target = met_target
    if semester is not None:
        record.semester = semester
    record.calculated_at = datetime.now()
    db.session.commit()
    return record


def batch_save_co_attainments(course_id, academic_year=None, semester=None):
    """
    Recalculate and store CO attainment for every active enrollment and active CO of a course.

    Each (student, CO) unit is computed and upserted on its own; a failing unit
    is rolled back, logged and reported, and the batch moves on. Returns a
    summary with `succeeded`, `skipped` and `failed` entries.
    """
    course = db.session.get(Course, course_id)
    if course is None:
        return NotFound('Course', course_id)

    year_key = resolve_academic_year(course, academic_year)
    cos = CourseOutcome.query.filter_by(course_id=course.id, is_active=True).order_by(CourseOutcome.code).all()
    student_ids = [student.id for student in get_enrolled_students(course.id)]
    co_ids = [co.id for co in cos]
    # Keep plain values so that a rollback in one unit cannot expire what later units need
    course_ref = course.id

    summary = {
        'course_id': course_ref,
        'academic_year': year_key,
        'semester': semester,
        'total': len(student_ids) * len(co_ids),
        'succeeded': 0,
        'skipped': 0,
        'failed': [],
    }
    logging.info(f"Batch saving CO attainments for course {course_ref}: "
                 f"{len(student_ids)} students x {len(co_ids)} COs")

    for co_id in co_ids:
        for student_id in student_ids:
            try:
                result = calculate_student_co_attainment(course_ref, co_id, student_id, academic_year=academic_year)
                if isinstance(result, NotFound):
                    logging.warning(f"Skipping CO {co_id} for student {student_id}: {result.message}")
                    summary['skipped'] += 1
                    continue
                upsert_co_attainment(
                    course_ref, co_id, student_id, year_key,
                    result.value['percentage'], result.value['met_target'], semester=semester
                )
                summary['succeeded'] += 1
            except Exception as e:
                db.session.rollback()
                logging.error(f"Error saving CO attainment for course {course_ref}, CO {co_id}, "
                              f"student {student_id}: {str(e)}")
                summary['failed'].append({'student_id': student_id, 'co_id': co_id, 'error': str(e)})

    try:
        log = Log(action="BATCH_SAVE_CO_ATTAINMENT",
                  description=f"Recalculated CO attainment for course {course_ref} ({year_key or 'no year'}): "
                              f"{summary['succeeded']} saved, {len(summary['failed'])} failed")
        db.session.add(log)
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        logging.error(f"Error writing batch save log for course {course_ref}: {str(e)}")

    return Computed(summary)
