from decimal import Decimal

import pytest

from attainment_results import NotFound, Computed
from co_attainment import (
    aggregate_co_marks, calculate_student_co_attainment, calculate_class_co_attainment,
    calculate_course_attainment, classify_attainment_level, generate_co_report, safe_percentage,
    clamp_percentage
)
from models import db, QuestionCOMapping, Assessment


def test_scenario_a_all_questions_attempted_below_target(obe):
    course = obe.course(target=60)
    co = obe.co(course, "CO1")
    q1 = obe.question(course, [co])
    q2 = obe.question(course, [co])
    student = obe.enroll(course)
    obe.mark(q1, student, 6)
    obe.mark(q2, student, 5)

    result = calculate_student_co_attainment(course.id, co.id, student.id)

    assert isinstance(result, Computed)
    assert result.value['percentage'] == Decimal('55.00')
    assert result.value['met_target'] is False
    assert result.value['attempted_questions'] == 2
    assert result.value['total_questions'] == 2


def test_scenario_b_unattempted_question_left_out(obe):
    course = obe.course(target=60)
    co = obe.co(course, "CO1")
    q1 = obe.question(course, [co])
    obe.question(course, [co])
    student = obe.enroll(course)
    obe.mark(q1, student, 8)

    result = calculate_student_co_attainment(course.id, co.id, student.id).value

    assert result['percentage'] == Decimal('80.00')
    assert result['met_target'] is True
    assert result['attempted_questions'] == 1
    assert result['total_questions'] == 2
    assert result['total_max_marks'] == Decimal('10.00')


def test_null_obtained_marks_count_as_not_attempted(obe):
    course = obe.course()
    co = obe.co(course)
    q1 = obe.question(course, [co])
    q2 = obe.question(course, [co])
    student = obe.enroll(course)
    obe.mark(q1, student, 7)
    obe.mark(q2, student, None)

    aggregate = aggregate_co_marks(course.id, co.id, student.id)

    assert aggregate == {'obtained': Decimal('7'), 'max': Decimal('10'), 'attempted': 1, 'total': 2}


def test_zero_score_is_still_an_attempt(obe):
    course = obe.course()
    co = obe.co(course)
    q1 = obe.question(course, [co])
    q2 = obe.question(course, [co])
    student = obe.enroll(course)
    obe.mark(q1, student, 10)
    obe.mark(q2, student, 0)

    result = calculate_student_co_attainment(course.id, co.id, student.id).value

    assert result['percentage'] == Decimal('50.00')
    assert result['attempted_questions'] == 2


def test_co_without_questions_is_zero_not_error(obe):
    course = obe.course()
    co = obe.co(course)
    student = obe.enroll(course)

    result = calculate_student_co_attainment(course.id, co.id, student.id)

    assert isinstance(result, Computed)
    assert result.value['percentage'] == Decimal('0')
    assert result.value['met_target'] is False
    assert result.value['total_questions'] == 0


def test_student_with_no_marks_is_zero(obe):
    course = obe.course()
    co = obe.co(course)
    obe.question(course, [co])
    student = obe.enroll(course)

    result = calculate_student_co_attainment(course.id, co.id, student.id).value

    assert result['percentage'] == Decimal('0')
    assert result['met_target'] is False
    assert result['attempted_questions'] == 0
    assert result['total_questions'] == 1


def test_percentage_clamped_when_marks_exceed_max(obe):
    course = obe.course()
    co = obe.co(course)
    question = obe.question(course, [co])
    student = obe.enroll(course)
    obe.mark(question, student, 12)

    result = calculate_student_co_attainment(course.id, co.id, student.id).value

    assert result['percentage'] == Decimal('100.00')


def test_inactive_question_mapping_is_ignored(obe):
    course = obe.course()
    co = obe.co(course)
    q1 = obe.question(course, [co])
    q2 = obe.question(course, [co])
    student = obe.enroll(course)
    obe.mark(q1, student, 10)
    obe.mark(q2, student, 0)
    QuestionCOMapping.query.filter_by(question_id=q2.id).update({'is_active': False})
    db.session.commit()

    result = calculate_student_co_attainment(course.id, co.id, student.id).value

    assert result['percentage'] == Decimal('100.00')
    assert result['total_questions'] == 1


def test_questions_of_other_course_are_ignored(obe):
    course = obe.course()
    other_course = obe.course()
    co = obe.co(course)
    q1 = obe.question(course, [co])
    q_other = obe.question(other_course, [co])
    student = obe.enroll(course)
    obe.mark(q1, student, 4)
    obe.mark(q_other, student, 10)

    result = calculate_student_co_attainment(course.id, co.id, student.id).value

    assert result['percentage'] == Decimal('40.00')
    assert result['total_questions'] == 1


def test_scope_by_assessment_and_academic_year(obe):
    course = obe.course()
    co = obe.co(course)
    mid_term = obe.assessment(course)
    end_term = obe.assessment(course)
    q1 = obe.question(course, [co], assessment=mid_term)
    q2 = obe.question(course, [co], assessment=end_term)
    student = obe.enroll(course)
    obe.mark(q1, student, 9, academic_year='2023-24')
    obe.mark(q2, student, 3, academic_year='2024-25')

    by_assessment = calculate_student_co_attainment(course.id, co.id, student.id, assessment_id=mid_term.id).value
    by_year = calculate_student_co_attainment(course.id, co.id, student.id, academic_year='2024-25').value

    assert by_assessment['percentage'] == Decimal('90.00')
    assert by_year['percentage'] == Decimal('30.00')
    assert by_year['attempted_questions'] == 1


def test_inactive_assessment_is_ignored(obe):
    course = obe.course()
    co = obe.co(course)
    q1 = obe.question(course, [co])
    q2 = obe.question(course, [co])
    student = obe.enroll(course)
    obe.mark(q1, student, 10)
    obe.mark(q2, student, 0)
    db.session.get(Assessment, q2.assessment_id).is_active = False
    db.session.commit()

    result = calculate_student_co_attainment(course.id, co.id, student.id).value

    assert result['percentage'] == Decimal('100.00')


def test_missing_course_or_co_is_not_found(obe):
    course = obe.course()
    other_course = obe.course()
    foreign_co = obe.co(other_course)
    student = obe.enroll(course)

    missing_course = calculate_student_co_attainment(9999, foreign_co.id, student.id)
    missing_co = calculate_student_co_attainment(course.id, 9999, student.id)
    wrong_course = calculate_student_co_attainment(course.id, foreign_co.id, student.id)

    assert missing_course == NotFound('Course', 9999)
    assert missing_co == NotFound('CourseOutcome', 9999)
    assert isinstance(wrong_course, NotFound)
    assert not missing_course


def test_scenario_c_class_attainment_level(obe):
    course = obe.course(target=60, thresholds=(60, 70, 80))
    co = obe.co(course, "CO2")
    obe.class_with_results(course, co, met=7, total=10)

    result = calculate_class_co_attainment(course.id, co.id).value

    assert result['co_code'] == "CO2"
    assert result['total_students'] == 10
    assert result['students_meeting_target'] == 7
    assert result['percentage_meeting_target'] == Decimal('70.00')
    assert result['attainment_level'] == 2
    assert result['level3_threshold'] == Decimal('80.00')


def test_class_attainment_with_no_students(obe):
    course = obe.course()
    co = obe.co(course)
    obe.question(course, [co])

    result = calculate_class_co_attainment(course.id, co.id).value

    assert result['total_students'] == 0
    assert result['percentage_meeting_target'] == Decimal('0')
    assert result['attainment_level'] == 0


def test_inactive_enrollments_are_not_counted(obe):
    course = obe.course()
    co = obe.co(course)
    question, _ = obe.class_with_results(course, co, met=1, total=2)
    dropped = obe.enroll(course, is_active=False)
    obe.mark(question, dropped, 10)

    result = calculate_class_co_attainment(course.id, co.id).value

    assert result['total_students'] == 2
    assert result['students_meeting_target'] == 1


@pytest.mark.parametrize("percentage, expected", [
    (0, 0), (59.99, 0), (60, 1), (69.99, 1), (70, 2), (79.99, 2), (80, 3), (100, 3),
])
def test_level_thresholds_are_inclusive(percentage, expected):
    assert classify_attainment_level(percentage, 60, 70, 80) == expected


def test_level_is_monotonic_in_percentage_meeting_target():
    levels = [classify_attainment_level(Decimal(p) / 4, 55, 65, 75) for p in range(0, 401)]
    assert levels == sorted(levels)


def test_safe_percentage_handles_zero_denominator():
    assert safe_percentage(5, 0) == Decimal('0')
    assert safe_percentage(1, 3) == Decimal('33.33')
    assert clamp_percentage(-4) == Decimal('0')
    assert clamp_percentage(140) == Decimal('100')


def test_course_attainment_covers_every_active_co(obe):
    course = obe.course()
    co1 = obe.co(course, "CO1")
    co2 = obe.co(course, "CO2")
    inactive = obe.co(course, "CO3")
    inactive.is_active = False
    db.session.commit()
    q1 = obe.question(course, [co1])
    q2 = obe.question(course, [co1, co2])
    students = [obe.enroll(course) for _ in range(4)]
    for index, student in enumerate(students):
        obe.mark(q1, student, 10 if index < 3 else 2)
        obe.mark(q2, student, 9 if index < 2 else 1)

    result = calculate_course_attainment(course.id).value

    assert [co['co_code'] for co in result['co_attainments']] == ["CO1", "CO2"]
    assert result['total_students'] == 4
    assert len(result['student_attainments']) == 8
    co1_result, co2_result = result['co_attainments']
    # CO1 per student: 95, 95, 55, 15 -> 2 of 4 meet 60
    assert co1_result['students_meeting_target'] == 2
    assert co1_result['percentage_meeting_target'] == Decimal('50.00')
    # CO2 per student: 90, 90, 10, 10
    assert co2_result['students_meeting_target'] == 2
    assert result['overall_attainment']['level0_count'] == 2
    for student_result in result['student_attainments']:
        assert Decimal('0') <= student_result['percentage'] <= Decimal('100')


def test_course_attainment_not_found(app):
    assert isinstance(calculate_course_attainment(424242), NotFound)


def test_co_report_examples(obe):
    course = obe.course()
    co = obe.co(course)
    q1 = obe.question(course, [co])
    q2 = obe.question(course, [co])
    full = obe.enroll(course)
    partial = obe.enroll(course)
    obe.mark(q1, full, 8)
    obe.mark(q2, full, 9)
    obe.mark(q1, partial, 5)

    report = generate_co_report(course.id, co.id).value

    assert report['class_attainment']['total_students'] == 2
    assert report['examples']['standard_case']['student_id'] == full.id
    assert report['examples']['unattempted_case']['student_id'] == partial.id
    assert len(report['student_breakdown']) == 2


def test_section_scope_counts_only_that_sections_students(obe):
    course = obe.course()
    co = obe.co(course)
    section_a = obe.section(course, "A")
    section_b = obe.section(course, "B")
    q_a = obe.question(course, [co], assessment=obe.assessment(course, section_id=section_a.id))
    q_b = obe.question(course, [co], assessment=obe.assessment(course, section_id=section_b.id))
    for _ in range(5):
        obe.mark(q_a, obe.enroll(course, section=section_a), 10)
        obe.mark(q_b, obe.enroll(course, section=section_b), 10)

    section_result = calculate_class_co_attainment(course.id, co.id, section_id=section_a.id).value
    course_result = calculate_course_attainment(course.id, section_id=section_b.id).value
    whole_class = calculate_class_co_attainment(course.id, co.id).value

    assert section_result['total_students'] == 5
    assert section_result['students_meeting_target'] == 5
    assert section_result['percentage_meeting_target'] == Decimal('100.00')
    assert section_result['attainment_level'] == 3
    assert course_result['total_students'] == 5
    assert course_result['co_attainments'][0]['percentage_meeting_target'] == Decimal('100.00')
    assert whole_class['total_students'] == 10


def test_section_scope_keeps_course_wide_assessments(obe):
    course = obe.course()
    co = obe.co(course)
    section_a = obe.section(course, "A")
    section_b = obe.section(course, "B")
    shared = obe.question(course, [co])
    obe.question(course, [co], assessment=obe.assessment(course, section_id=section_b.id))
    student = obe.enroll(course, section=section_a)
    obe.mark(shared, student, 7)

    result = calculate_class_co_attainment(course.id, co.id, section_id=section_a.id).value
    questions = calculate_student_co_attainment(course.id, co.id, student.id, section_id=section_a.id).value

    assert result['students_meeting_target'] == 1
    assert questions['total_questions'] == 1
