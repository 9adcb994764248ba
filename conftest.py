import pytest

from app import create_app
from config import TestConfig
from models import (
    db, Program, Batch, Section, Course, CourseOutcome, ProgramOutcome, Assessment, Question,
    QuestionCOMapping, Student, Enrollment, StudentMark, COPOMapping
)


@pytest.fixture
def app():
    app = create_app(TestConfig)
    with app.app_context():
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


class OBEBuilder:
    """Small helper for building programs, courses and marks in tests"""

    def __init__(self):
        self._counter = 0

    def _next(self):
        self._counter += 1
        return self._counter

    def _save(self, obj):
        db.session.add(obj)
        db.session.commit()
        return obj

    def program(self, code=None):
        code = code or f"P{self._next()}"
        return self._save(Program(code=code, name=f"Program {code}"))

    def batch(self, program, name=None):
        return self._save(Batch(name=name or f"B{self._next()}", program_id=program.id,
                                start_year=2021, end_year=2025))

    def course(self, batch=None, code=None, status='COMPLETED', is_active=True, target=60,
               thresholds=(60, 70, 80), academic_year=None):
        if batch is None:
            batch = self.batch(self.program())
        return self._save(Course(
            code=code or f"C{self._next()}", name="Test course", batch_id=batch.id,
            status=status, is_active=is_active, academic_year=academic_year,
            target_percentage=target, level1_threshold=thresholds[0],
            level2_threshold=thresholds[1], level3_threshold=thresholds[2]
        ))

    def co(self, course, code=None):
        return self._save(CourseOutcome(code=code or f"CO{self._next()}", description="Outcome",
                                        course_id=course.id))

    def po(self, program, code=None):
        return self._save(ProgramOutcome(code=code or f"PO{self._next()}", description="Program outcome",
                                         program_id=program.id))

    def assessment(self, course, section_id=None):
        return self._save(Assessment(name=f"Exam {self._next()}", course_id=course.id, section_id=section_id))

    def question(self, course, cos, max_marks=10, assessment=None):
        assessment = assessment or self.assessment(course)
        question = self._save(Question(number=self._next(), max_marks=max_marks, assessment_id=assessment.id))
        for co in cos:
            db.session.add(QuestionCOMapping(question_id=question.id, co_id=co.id))
        db.session.commit()
        return question

    def section(self, course, name=None):
        return self._save(Section(name=name or f"S{self._next()}", batch_id=course.batch_id))

    def student(self, section=None):
        number = self._next()
        return self._save(Student(student_id=f"S{number:04d}", name=f"Student {number}",
                                  section_id=section.id if section else None))

    def enroll(self, course, student=None, is_active=True, section=None):
        student = student or self.student(section)
        self._save(Enrollment(student_id=student.id, course_id=course.id, is_active=is_active))
        return student

    def mark(self, question, student, obtained, academic_year=''):
        return self._save(StudentMark(question_id=question.id, student_id=student.id,
                                      academic_year=academic_year, obtained_marks=obtained,
                                      max_marks=question.max_marks))

    def mapping(self, course, co, po, level):
        return self._save(COPOMapping(course_id=course.id, co_id=co.id, po_id=po.id, level=level))

    def class_with_results(self, course, co, met, total, max_marks=10):
        """Enroll `total` students on one question of `co`; the first `met` score full marks, the rest zero"""
        question = self.question(course, [co], max_marks=max_marks)
        students = []
        for index in range(total):
            student = self.enroll(course)
            self.mark(question, student, max_marks if index < met else 0)
            students.append(student)
        return question, students


@pytest.fixture
def obe(app):
    return OBEBuilder()
