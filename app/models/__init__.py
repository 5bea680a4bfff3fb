"""Database models — re-exports all models.

Import from here:  from app.models import Rfp, Proposal, ...
Or from submodules: from app.models.rfps import Rfp
"""

from .base import Base  # noqa: F401

# Vendors
from .vendors import Vendor  # noqa: F401

# RFPs & Proposals
from .rfps import Rfp  # noqa: F401
from .proposals import Proposal  # noqa: F401

# Conversations & outbound mail
from .conversations import Conversation, Message, SentEmail  # noqa: F401
