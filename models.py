# --- START OF FILE models.py ---

from datetime import datetime
from decimal import Decimal, InvalidOperation
from flask_sqlalchemy import SQLAlchemy
from sqlalchemy import Index, CheckConstraint

from exceptions import InvalidConfigurationError

# Create a db instance to be initialized later
db = SQLAlchemy()

COURSE_STATUSES = ('FUTURE', 'ACTIVE', 'COMPLETED')


def _to_decimal(value, field_name):
    try:
        return Decimal(str(value))
    except (InvalidOperation, TypeError, ValueError):
        raise InvalidConfigurationError(f"{field_name} must be a number")


def validate_attainment_thresholds(target_percentage, level1, level2, level3):
    """
    Validate a course's target percentage and level thresholds.

    All values must lie in [0, 100] and the thresholds must be strictly
    ascending (level1 < level2 < level3). Returns the values as Decimals.
    """
    values = {
        'target_percentage': _to_decimal(target_percentage, 'target_percentage'),
        'level1_threshold': _to_decimal(level1, 'level1_threshold'),
        'level2_threshold': _to_decimal(level2, 'level2_threshold'),
        'level3_threshold': _to_decimal(level3, 'level3_threshold'),
    }
    for name, value in values.items():
        if value < Decimal('0') or value > Decimal('100'):
            raise InvalidConfigurationError(f"{name} must be between 0 and 100")

    if not (values['level1_threshold'] < values['level2_threshold'] < values['level3_threshold']):
        raise InvalidConfigurationError(
            "Level thresholds must be strictly ascending (level1 < level2 < level3)"
        )
    return values


class Program(db.Model):
    """Program model (e.g. B.Tech Computer Science)"""
    __tablename__ = 'program'
    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(20), nullable=False, unique=True, index=True)
    name = db.Column(db.String(150), nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.now)
    updated_at = db.Column(db.DateTime, default=datetime.now, onupdate=datetime.now)

    batches = db.relationship('Batch', backref='program', lazy=True, cascade="all, delete-orphan")
    program_outcomes = db.relationship('ProgramOutcome', backref='program', lazy=True, cascade="all, delete-orphan")
    attainment_weight = db.relationship('AttainmentWeight', backref='program', uselist=False, cascade="all, delete-orphan")

    def __repr__(self):
        return f"<Program {self.code}: {self.name}>"


class Batch(db.Model):
    """Batch model: one intake of a program"""
    __tablename__ = 'batch'
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(50), nullable=False)
    program_id = db.Column(db.Integer, db.ForeignKey('program.id', ondelete='CASCADE'), nullable=False, index=True)
    start_year = db.Column(db.Integer, nullable=False)
    end_year = db.Column(db.Integer, nullable=False)
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.now)

    courses = db.relationship('Course', backref='batch', lazy=True, cascade="all, delete-orphan")
    sections = db.relationship('Section', backref='batch', lazy=True, cascade="all, delete-orphan")

    __table_args__ = (
        db.UniqueConstraint('program_id', 'name', name='_program_batch_name_uc'),
    )

    def __repr__(self):
        return f"<Batch {self.name} for Program {self.program_id}>"


class Section(db.Model):
    """Section model"""
    __tablename__ = 'section'
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(20), nullable=False)
    batch_id = db.Column(db.Integer, db.ForeignKey('batch.id', ondelete='CASCADE'), nullable=False, index=True)

    def __repr__(self):
        return f"<Section {self.name} for Batch {self.batch_id}>"


class Course(db.Model):
    """Course model with the attainment target and level thresholds"""
    __tablename__ = 'course'
    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(20), nullable=False, index=True)
    name = db.Column(db.String(150), nullable=False)
    batch_id = db.Column(db.Integer, db.ForeignKey('batch.id', ondelete='CASCADE'), nullable=False, index=True)
    semester = db.Column(db.String(20), nullable=True)
    academic_year = db.Column(db.String(20), nullable=True)
    status = db.Column(db.String(20), nullable=False, default='FUTURE', index=True)
    is_active = db.Column(db.Boolean, default=True, nullable=False, index=True)
    target_percentage = db.Column(db.Numeric(5, 2), nullable=False, default=60.0)
    level1_threshold = db.Column(db.Numeric(5, 2), nullable=False, default=60.0)
    level2_threshold = db.Column(db.Numeric(5, 2), nullable=False, default=70.0)
    level3_threshold = db.Column(db.Numeric(5, 2), nullable=False, default=80.0)
    created_at = db.Column(db.DateTime, default=datetime.now)
    updated_at = db.Column(db.DateTime, default=datetime.now, onupdate=datetime.now)

    course_outcomes = db.relationship('CourseOutcome', backref='course', lazy=True, cascade="all, delete-orphan")
    assessments = db.relationship('Assessment', backref='course', lazy=True, cascade="all, delete-orphan")
    enrollments = db.relationship('Enrollment', backref='course', lazy=True, cascade="all, delete-orphan")
    co_po_mappings = db.relationship('COPOMapping', backref='course', lazy=True, cascade="all, delete-orphan")

    __table_args__ = (
        db.UniqueConstraint('code', 'batch_id', name='_course_code_batch_uc'),
        Index('idx_course_batch_status', 'batch_id', 'status', 'is_active'),
    )

    def apply_attainment_settings(self, target_percentage=None, level1_threshold=None,
                                  level2_threshold=None, level3_threshold=None):
        """Validate and apply new attainment settings; omitted values keep their current setting"""
        values = validate_attainment_thresholds(
            self.target_percentage if target_percentage is None else target_percentage,
            self.level1_threshold if level1_threshold is None else level1_threshold,
            self.level2_threshold if level2_threshold is None else level2_threshold,
            self.level3_threshold if level3_threshold is None else level3_threshold,
        )
        for name, value in values.items():
            setattr(self, name, value)
        return values

    def __repr__(self):
        return f"<Course {self.code}: {self.name}>"


class CourseOutcome(db.Model):
    """CourseOutcome model"""
    __tablename__ = 'course_outcome'
    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(20), nullable=False, index=True)
    description = db.Column(db.Text, nullable=False)
    course_id = db.Column(db.Integer, db.ForeignKey('course.id', ondelete='CASCADE'), nullable=False, index=True)
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.now)
    updated_at = db.Column(db.DateTime, default=datetime.now, onupdate=datetime.now)

    question_mappings = db.relationship('QuestionCOMapping', backref='course_outcome', lazy=True, cascade="all, delete-orphan")

    __table_args__ = (
        db.UniqueConstraint('course_id', 'code', name='_course_outcome_code_uc'),
        Index('idx_course_outcome_course_code', 'course_id', 'code'),
    )

    def __repr__(self):
        return f"<CourseOutcome {self.code} for Course {self.course_id}>"


class ProgramOutcome(db.Model):
    """ProgramOutcome model"""
    __tablename__ = 'program_outcome'
    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(20), nullable=False, index=True)
    description = db.Column(db.Text, nullable=False)
    program_id = db.Column(db.Integer, db.ForeignKey('program.id', ondelete='CASCADE'), nullable=False, index=True)
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.now)
    updated_at = db.Column(db.DateTime, default=datetime.now, onupdate=datetime.now)

    __table_args__ = (
        db.UniqueConstraint('program_id', 'code', name='_program_outcome_code_uc'),
    )

    def __repr__(self):
        return f"<ProgramOutcome {self.code}>"


class Assessment(db.Model):
    """Assessment model (exam, quiz, assignment) optionally scoped to a section"""
    __tablename__ = 'assessment'
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(150), nullable=False)
    type = db.Column(db.String(30), nullable=False, default='exam')
    course_id = db.Column(db.Integer, db.ForeignKey('course.id', ondelete='CASCADE'), nullable=False, index=True)
    section_id = db.Column(db.Integer, db.ForeignKey('section.id', ondelete='SET NULL'), nullable=True, index=True)
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.now)

    questions = db.relationship('Question', backref='assessment', lazy=True, cascade="all, delete-orphan")

    __table_args__ = (
        Index('idx_assessment_course_section', 'course_id', 'section_id', 'is_active'),
    )

    def __repr__(self):
        return f"<Assessment {self.name} for Course {self.course_id}>"


class Question(db.Model):
    """Question model"""
    __tablename__ = 'question'
    id = db.Column(db.Integer, primary_key=True)
    number = db.Column(db.Integer, nullable=False)
    text = db.Column(db.Text, nullable=True)
    max_marks = db.Column(db.Integer, nullable=False)
    assessment_id = db.Column(db.Integer, db.ForeignKey('assessment.id', ondelete='CASCADE'), nullable=False, index=True)
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.now)

    co_mappings = db.relationship('QuestionCOMapping', backref='question', lazy=True, cascade="all, delete-orphan")
    marks = db.relationship('StudentMark', backref='question', lazy=True, cascade="all, delete-orphan")

    __table_args__ = (
        CheckConstraint('max_marks > 0', name='ck_question_max_marks_positive'),
        Index('idx_question_assessment_number', 'assessment_id', 'number'),
    )

    def __repr__(self):
        return f"<Question {self.number} for Assessment {self.assessment_id}>"


class QuestionCOMapping(db.Model):
    """Question to course outcome mapping; each mapping can be switched off on its own"""
    __tablename__ = 'question_co_mapping'
    id = db.Column(db.Integer, primary_key=True)
    question_id = db.Column(db.Integer, db.ForeignKey('question.id', ondelete='CASCADE'), nullable=False, index=True)
    co_id = db.Column(db.Integer, db.ForeignKey('course_outcome.id', ondelete='CASCADE'), nullable=False, index=True)
    is_active = db.Column(db.Boolean, default=True, nullable=False)

    __table_args__ = (
        db.UniqueConstraint('question_id', 'co_id', name='_question_co_uc'),
        Index('idx_qco_co_active', 'co_id', 'is_active'),
    )

    def __repr__(self):
        return f"<QuestionCOMapping Q{self.question_id} -> CO{self.co_id}>"


class Student(db.Model):
    """Student model"""
    __tablename__ = 'student'
    id = db.Column(db.Integer, primary_key=True)
    student_id = db.Column(db.String(30), nullable=False, unique=True, index=True)  # roll number
    name = db.Column(db.String(100), nullable=False)
    batch_id = db.Column(db.Integer, db.ForeignKey('batch.id', ondelete='SET NULL'), nullable=True, index=True)
    section_id = db.Column(db.Integer, db.ForeignKey('section.id', ondelete='SET NULL'), nullable=True, index=True)
    created_at = db.Column(db.DateTime, default=datetime.now)

    enrollments = db.relationship('Enrollment', backref='student', lazy=True, cascade="all, delete-orphan")
    marks = db.relationship('StudentMark', backref='student', lazy=True, cascade="all, delete-orphan")

    def __repr__(self):
        return f"<Student {self.student_id}: {self.name}>"


class Enrollment(db.Model):
    """Enrollment of a student in a course"""
    __tablename__ = 'enrollment'
    id = db.Column(db.Integer, primary_key=True)
    student_id = db.Column(db.Integer, db.ForeignKey('student.id', ondelete='CASCADE'), nullable=False, index=True)
    course_id = db.Column(db.Integer, db.ForeignKey('course.id', ondelete='CASCADE'), nullable=False, index=True)
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    enrolled_at = db.Column(db.DateTime, default=datetime.now)

    __table_args__ = (
        db.UniqueConstraint('student_id', 'course_id', name='_student_course_enrollment_uc'),
        Index('idx_enrollment_course_active', 'course_id', 'is_active'),
    )

    def __repr__(self):
        return f"<Enrollment Student {self.student_id} in Course {self.course_id}>"


class StudentMark(db.Model):
    """Marks of one student on one question; obtained_marks of None means not attempted"""
    __tablename__ = 'student_mark'
    id = db.Column(db.Integer, primary_key=True)
    question_id = db.Column(db.Integer, db.ForeignKey('question.id', ondelete='CASCADE'), nullable=False, index=True)
    student_id = db.Column(db.Integer, db.ForeignKey('student.id', ondelete='CASCADE'), nullable=False, index=True)
    section_id = db.Column(db.Integer, db.ForeignKey('section.id', ondelete='SET NULL'), nullable=True)
    academic_year = db.Column(db.String(20), nullable=False, default='')
    obtained_marks = db.Column(db.Numeric(10, 2), nullable=True)
    max_marks = db.Column(db.Integer, nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.now)
    updated_at = db.Column(db.DateTime, default=datetime.now, onupdate=datetime.now)

    __table_args__ = (
        db.UniqueConstraint('question_id', 'student_id', 'academic_year', name='_student_mark_uc'),
        Index('idx_student_mark_student_question', 'student_id', 'question_id'),
    )

    def __repr__(self):
        return f"<StudentMark {self.obtained_marks}/{self.max_marks} for Student {self.student_id} on Question {self.question_id}>"


class COPOMapping(db.Model):
    """CO-PO mapping strength: 0 not mapped, 1 weak, 2 medium, 3 strong"""
    __tablename__ = 'co_po_mapping'
    id = db.Column(db.Integer, primary_key=True)
    course_id = db.Column(db.Integer, db.ForeignKey('course.id', ondelete='CASCADE'), nullable=False, index=True)
    co_id = db.Column(db.Integer, db.ForeignKey('course_outcome.id', ondelete='CASCADE'), nullable=False, index=True)
    po_id = db.Column(db.Integer, db.ForeignKey('program_outcome.id', ondelete='CASCADE'), nullable=False, index=True)
    level = db.Column(db.Integer, nullable=False, default=0)
    is_active = db.Column(db.Boolean, default=True, nullable=False)

    course_outcome = db.relationship('CourseOutcome', backref=db.backref('po_mappings', lazy=True))
    program_outcome = db.relationship('ProgramOutcome', backref=db.backref('co_mappings', lazy=True))

    __table_args__ = (
        db.UniqueConstraint('co_id', 'po_id', name='_co_po_uc'),
        CheckConstraint('level >= 0 AND level <= 3', name='ck_co_po_level_range'),
        Index('idx_co_po_course_po', 'course_id', 'po_id'),
    )

    def __repr__(self):
        return f"<COPOMapping CO{self.co_id} -> PO{self.po_id} level {self.level}>"


class COAttainment(db.Model):
    """Stored CO attainment of one student; unique per course, CO, student and academic year"""
    __tablename__ = 'co_attainment'
    id = db.Column(db.Integer, primary_key=True)
    course_id = db.Column(db.Integer, db.ForeignKey('course.id', ondelete='CASCADE'), nullable=False, index=True)
    co_id = db.Column(db.Integer, db.ForeignKey('course_outcome.id', ondelete='CASCADE'), nullable=False, index=True)
    student_id = db.Column(db.Integer, db.ForeignKey('student.id', ondelete='CASCADE'), nullable=False, index=True)
    academic_year = db.Column(db.String(20), nullable=False, default='')
    semester = db.Column(db.String(20), nullable=True)
    percentage = db.Column(db.Numeric(5, 2), nullable=False)
    met_target = db.Column(db.Boolean, nullable=False, default=False)
    calculated_at = db.Column(db.DateTime, default=datetime.now, onupdate=datetime.now)

    __table_args__ = (
        db.UniqueConstraint('course_id', 'co_id', 'student_id', 'academic_year', name='_co_attainment_key_uc'),
    )

    def __repr__(self):
        return f"<COAttainment {self.percentage}% CO{self.co_id} Student {self.student_id}>"


class AttainmentWeight(db.Model):
    """Direct/indirect attainment weights for a program"""
    __tablename__ = 'attainment_weight'
    id = db.Column(db.Integer, primary_key=True)
    program_id = db.Column(db.Integer, db.ForeignKey('program.id', ondelete='CASCADE'), nullable=False, unique=True)
    direct_weight = db.Column(db.Numeric(4, 3), nullable=False, default=1.0)
    indirect_weight = db.Column(db.Numeric(4, 3), nullable=False, default=0.0)
    updated_at = db.Column(db.DateTime, default=datetime.now, onupdate=datetime.now)

    def __repr__(self):
        return f"<AttainmentWeight direct={self.direct_weight} indirect={self.indirect_weight}>"


class IndirectAttainment(db.Model):
    """Survey-based (indirect) attainment percentage of a program outcome"""
    __tablename__ = 'indirect_attainment'
    id = db.Column(db.Integer, primary_key=True)
    program_id = db.Column(db.Integer, db.ForeignKey('program.id', ondelete='CASCADE'), nullable=False, index=True)
    po_id = db.Column(db.Integer, db.ForeignKey('program_outcome.id', ondelete='CASCADE'), nullable=False, index=True)
    academic_year = db.Column(db.String(20), nullable=False, default='')
    percentage = db.Column(db.Numeric(5, 2), nullable=False)
    source = db.Column(db.String(50), nullable=True)  # e.g. exit survey, alumni survey
    updated_at = db.Column(db.DateTime, default=datetime.now, onupdate=datetime.now)

    __table_args__ = (
        db.UniqueConstraint('program_id', 'po_id', 'academic_year', name='_indirect_attainment_uc'),
    )

    def __repr__(self):
        return f"<IndirectAttainment PO{self.po_id} {self.percentage}%>"


class Log(db.Model):
    """Log model"""
    __tablename__ = 'log'
    id = db.Column(db.Integer, primary_key=True)
    action = db.Column(db.String(50), nullable=False, index=True)
    description = db.Column(db.Text, nullable=False)
    timestamp = db.Column(db.DateTime, default=datetime.now, index=True)

    def __repr__(self):
        return f"<Log {self.action} at {self.timestamp}>"

# --- END OF FILE models.py ---
