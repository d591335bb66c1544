"""Domain modules package."""

from marketplace.modules.billing import models as billing_models  # noqa: F401
from marketplace.modules.booking import models as booking_models  # noqa: F401
from marketplace.modules.disputes import models as disputes_models  # noqa: F401
from marketplace.modules.providers import models as providers_models  # noqa: F401
