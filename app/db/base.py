# /app/db/base.py

# Central registry for all SQLAlchemy models. Importing them here guarantees
# Base.metadata knows every table when Alembic or `create_all` runs.

from .base_class import Base

from .models.school_models import School, Workspace
from .models.user_models import User
from .models.class_student_models import Class, Student, TransferRecord
from .models.academic_models import Subject, Score
from .models.finance_models import Fee, Payment
from .models.audit_models import AuditLog
from .models.attendance_models import Attendance
