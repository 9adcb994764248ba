from decimal import Decimal

import co_attainment
from attainment_results import NotFound
from co_attainment import batch_save_co_attainments, upsert_co_attainment
from models import db, COAttainment, StudentMark, Log


def _stored(course):
    rows = COAttainment.query.filter_by(course_id=course.id).order_by(COAttainment.co_id, COAttainment.student_id).all()
    return [(row.co_id, row.student_id, row.academic_year, row.percentage, row.met_target) for row in rows]


def _course_with_marks(obe, academic_year='2023-24'):
    course = obe.course(academic_year=academic_year)
    co1 = obe.co(course, "CO1")
    co2 = obe.co(course, "CO2")
    q1 = obe.question(course, [co1])
    q2 = obe.question(course, [co2])
    students = [obe.enroll(course) for _ in range(3)]
    for index, student in enumerate(students):
        obe.mark(q1, student, 4 + index * 3)
        obe.mark(q2, student, 9 - index)
    return course, (co1, co2), (q1, q2), students


def test_batch_save_is_idempotent(obe):
    course, cos, questions, students = _course_with_marks(obe)

    first = batch_save_co_attainments(course.id).value
    stored_first = _stored(course)
    second = batch_save_co_attainments(course.id).value
    stored_second = _stored(course)

    assert first['total'] == first['succeeded'] == 6
    assert first['failed'] == [] and second['failed'] == []
    assert len(stored_first) == 6
    assert stored_first == stored_second
    assert {row[2] for row in stored_first} == {'2023-24'}


def test_rerun_after_mark_correction_updates_in_place(obe):
    course, (co1, co2), (q1, q2), students = _course_with_marks(obe)
    batch_save_co_attainments(course.id)
    row_ids = sorted(row.id for row in COAttainment.query.filter_by(course_id=course.id))

    mark = StudentMark.query.filter_by(question_id=q1.id, student_id=students[0].id).one()
    mark.obtained_marks = 10
    db.session.commit()
    batch_save_co_attainments(course.id)

    assert sorted(row.id for row in COAttainment.query.filter_by(course_id=course.id)) == row_ids
    corrected = COAttainment.query.filter_by(course_id=course.id, co_id=co1.id, student_id=students[0].id).one()
    assert corrected.percentage == Decimal('100.00')
    assert corrected.met_target is True


def test_explicit_academic_year_is_part_of_the_key(obe):
    course, cos, questions, students = _course_with_marks(obe, academic_year=None)

    batch_save_co_attainments(course.id)
    batch_save_co_attainments(course.id, academic_year='2024-25', semester='5')

    rows = COAttainment.query.filter_by(course_id=course.id).all()
    assert len(rows) == 12
    assert {row.academic_year for row in rows} == {'', '2024-25'}
    # No marks were recorded for 2024-25
    assert all(row.percentage == Decimal('0') for row in rows if row.academic_year == '2024-25')
    assert {row.semester for row in rows if row.academic_year == '2024-25'} == {'5'}


def test_one_failing_unit_does_not_stop_the_batch(obe, monkeypatch):
    course, cos, questions, students = _course_with_marks(obe)
    broken_student_id = students[1].id
    original_upsert = co_attainment.upsert_co_attainment

    def flaky_upsert(course_id, co_id, student_id, *args, **kwargs):
        if student_id == broken_student_id:
            raise RuntimeError("disk full")
        return original_upsert(course_id, co_id, student_id, *args, **kwargs)

    monkeypatch.setattr(co_attainment, 'upsert_co_attainment', flaky_upsert)

    summary = batch_save_co_attainments(course.id).value

    assert summary['total'] == 6
    assert summary['succeeded'] == 4
    assert len(summary['failed']) == 2
    assert {failure['student_id'] for failure in summary['failed']} == {broken_student_id}
    assert summary['failed'][0]['error'] == "disk full"
    assert COAttainment.query.filter_by(course_id=course.id).count() == 4
    assert COAttainment.query.filter_by(student_id=broken_student_id).count() == 0
    assert Log.query.filter_by(action="BATCH_SAVE_CO_ATTAINMENT").count() == 1


def test_upsert_overwrites_existing_row(obe):
    course = obe.course()
    co = obe.co(course)
    student = obe.enroll(course)

    first = upsert_co_attainment(course.id, co.id, student.id, '2023-24', Decimal('40'), False)
    second = upsert_co_attainment(course.id, co.id, student.id, '2023-24', Decimal('75.5'), True)

    assert first.id == second.id
    assert COAttainment.query.count() == 1
    assert second.percentage == Decimal('75.50')
    assert second.met_target is True


def test_batch_save_for_missing_course(app):
    assert batch_save_co_attainments(5050) == NotFound('Course', 5050)
