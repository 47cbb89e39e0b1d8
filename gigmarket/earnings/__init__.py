from gigmarket.earnings.models import Earning, EarningStatus
from gigmarket.earnings.store import EarningStore

__all__ = ["Earning", "EarningStatus", "EarningStore"]
