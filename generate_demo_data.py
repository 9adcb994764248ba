import sys
import random
import argparse
from decimal import Decimal, ROUND_HALF_UP
from faker import Faker

# Make sure we can import from the current directory
sys.path.append('.')

# Import the models
from models import (
    db, Program, Batch, Section, Course, CourseOutcome, ProgramOutcome, Assessment, Question,
    QuestionCOMapping, Student, Enrollment, StudentMark, COPOMapping
)

PROGRAM_OUTCOMES = [
    ("PO1", "Engineering knowledge: apply mathematics, science and engineering fundamentals"),
    ("PO2", "Problem analysis: identify, formulate and analyse complex engineering problems"),
    ("PO3", "Design/development of solutions for complex engineering problems"),
    ("PO4", "Conduct investigations of complex problems using research-based knowledge"),
    ("PO5", "Modern tool usage: create, select and apply appropriate techniques and tools"),
    ("PO6", "The engineer and society: assess societal, health, safety and legal issues"),
]

COURSES = [
    ("CS101", "Programming Fundamentals", "1"),
    ("CS102", "Data Structures and Algorithms", "2"),
    ("CS201", "Database Management Systems", "3"),
    ("CS202", "Operating Systems", "4"),
]

ASSESSMENTS = [("Mid Term", "exam", 5), ("Quiz 1", "quiz", 3), ("End Term", "exam", 6)]


def seed_demo_program(seed=None, students_per_course=30, program_code="BTCS", start_year=2021,
                      academic_year="2023-24", attempt_rate=0.9):
    """
    Create a demo program with one batch, courses, outcomes, mappings, questions and marks.

    Returns the created Program. Marks are drawn from a normal distribution per
    student; a share of questions (1 - attempt_rate) is left unattempted.
    """
    rng = random.Random(seed)
    fake = Faker()
    if seed is not None:
        fake.seed_instance(seed)

    program = Program(code=program_code, name="B.Tech Computer Science and Engineering")
    db.session.add(program)
    db.session.flush()

    program_outcomes = []
    for code, description in PROGRAM_OUTCOMES:
        po = ProgramOutcome(code=code, description=description, program_id=program.id)
        db.session.add(po)
        program_outcomes.append(po)

    batch = Batch(name=f"{start_year}-{start_year + 4}", program_id=program.id,
                  start_year=start_year, end_year=start_year + 4)
    db.session.add(batch)
    db.session.flush()

    sections = [Section(name=name, batch_id=batch.id) for name in ("A", "B")]
    db.session.add_all(sections)
    db.session.flush()

    students = []
    for index in range(students_per_course):
        student = Student(
            student_id=f"{program_code}{start_year % 100:02d}{index + 1:03d}",
            name=fake.name(),
            batch_id=batch.id,
            section_id=sections[index % len(sections)].id
        )
        db.session.add(student)
        students.append(student)
    db.session.flush()

    for course_code, course_name, semester in COURSES:
        course = Course(code=course_code, name=course_name, batch_id=batch.id, semester=semester,
                        academic_year=academic_year, status='COMPLETED')
        db.session.add(course)
        db.session.flush()

        outcomes = []
        for number in range(1, rng.randint(3, 5) + 1):
            co = CourseOutcome(code=f"CO{number}", course_id=course.id,
                               description=f"{course_name} outcome {number}: {fake.sentence(nb_words=8)}")
            db.session.add(co)
            outcomes.append(co)
        db.session.flush()

        # Each CO maps to two or three POs with a random strength
        for co in outcomes:
            for po in rng.sample(program_outcomes, rng.randint(2, 3)):
                db.session.add(COPOMapping(course_id=course.id, co_id=co.id, po_id=po.id,
                                           level=rng.randint(1, 3)))

        questions = []
        for assessment_name, assessment_type, question_count in ASSESSMENTS:
            assessment = Assessment(name=assessment_name, type=assessment_type, course_id=course.id)
            db.session.add(assessment)
            db.session.flush()
            for number in range(1, question_count + 1):
                question = Question(number=number, max_marks=rng.choice([5, 10, 10, 15]),
                                    assessment_id=assessment.id)
                db.session.add(question)
                db.session.flush()
                db.session.add(QuestionCOMapping(question_id=question.id, co_id=rng.choice(outcomes).id))
                questions.append(question)

        for student in students:
            db.session.add(Enrollment(student_id=student.id, course_id=course.id))
            ability = rng.normalvariate(0.65, 0.15)
            for question in questions:
                if rng.random() > attempt_rate:
                    continue  # not attempted
                # Clamp the percentage between 0.0 and 1.0
                score_pct = Decimal(str(max(0.0, min(1.0, rng.normalvariate(ability, 0.1)))))
                obtained = (score_pct * question.max_marks).quantize(Decimal('0.5'), rounding=ROUND_HALF_UP)
                db.session.add(StudentMark(
                    question_id=question.id,
                    student_id=student.id,
                    section_id=student.section_id,
                    academic_year=academic_year,
                    obtained_marks=min(obtained, Decimal(question.max_marks)),
                    max_marks=question.max_marks
                ))

    db.session.commit()
    return program


def main():
    parser = argparse.ArgumentParser(description="Generate demo OBE data")
    parser.add_argument('--seed', type=int, default=None, help="Random seed for reproducible data")
    parser.add_argument('--students', type=int, default=30, help="Students in the demo batch")
    args = parser.parse_args()

    from app import create_app
    app = create_app()
    with app.app_context():
        program = seed_demo_program(seed=args.seed, students_per_course=args.students)

        print("\n--- Demo Data Generation Summary ---")
        print(f"  - Program {program.code}")
        print(f"  - {Course.query.count()} courses")
        print(f"  - {ProgramOutcome.query.count()} program outcomes")
        print(f"  - {CourseOutcome.query.count()} course outcomes")
        print(f"  - {Question.query.count()} questions")
        print(f"  - {Student.query.count()} students")
        print(f"  - {StudentMark.query.count()} marks")
        print("\nDemo data generation process complete.")


if __name__ == "__main__":
    main()
