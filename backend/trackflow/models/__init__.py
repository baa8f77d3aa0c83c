"""Aggregate model imports for Alembic auto-detection."""

# Identity
from trackflow.models.user import User, UserRole, WorkerType  # noqa: F401
from trackflow.models.nfc_card import NfcCard  # noqa: F401

# Reference data
from trackflow.models.client import Client  # noqa: F401
from trackflow.models.project import Project, ProjectStatus  # noqa: F401

# Production
from trackflow.models.assembly import Assembly, AssemblyStatus, AssemblyStatusLog  # noqa: F401
from trackflow.models.barcode import Barcode, BarcodeKind  # noqa: F401
from trackflow.models.qc_image import QcImage  # noqa: F401
from trackflow.models.drawing import Drawing, DrawingKind  # noqa: F401

# Logistics
from trackflow.models.logistics_batch import BatchAssembly, BatchStatus, LogisticsBatch  # noqa: F401

# Audit
from trackflow.models.operation_log import MobileOperationLog  # noqa: F401
