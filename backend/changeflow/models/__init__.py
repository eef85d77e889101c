from .tenancy import Organization
from .auth import User, USER_ROLES
from .changes import ECR, ECO, ECN, ECNAcknowledgment
from .sequences import NumberSequence
from .revisions import Revision

ENTITY_MODELS = {
    "ECR": ECR,
    "ECO": ECO,
    "ECN": ECN,
}

__all__ = [
    'Organization',
    'User', 'USER_ROLES',
    'ECR', 'ECO', 'ECN', 'ECNAcknowledgment',
    'NumberSequence',
    'Revision',
    'ENTITY_MODELS',
]
