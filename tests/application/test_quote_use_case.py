from datetime import datetime
from decimal import Decimal

from toll_engine.application.use_cases import QuoteContext, QuoteFeeUseCase
from toll_engine.domain.models import CrossingEvent, FeeRule, RuleType
from toll_engine.domain.pricing import FeeRuleEngine


class StaticRuleRepository:
    def __init__(self, rules):
        self.rules = rules
        self.calls = 0

    def fetch_active_rules(self):
        self.calls += 1
        return self.rules


def test_quote_use_case_reads_rule_snapshot():
    repository = StaticRuleRepository(
        [
            FeeRule(id="bus", name="Buses", rule_type=RuleType.VEHICLE_TYPE, base_amount=Decimal("35"), vehicle_type="bus", priority=5),
            FeeRule(id="base", name="Base", rule_type=RuleType.FLAT, base_amount=Decimal("10")),
        ]
    )
    use_case = QuoteFeeUseCase(QuoteContext(rule_repository=repository, engine=FeeRuleEngine()))

    quote = use_case.execute(CrossingEvent(vehicle_type="bus", entry_time=datetime(2024, 5, 6, 14, 0), plate_number="XYZ 987"))

    assert repository.calls == 1
    assert quote.calculated_fee == Decimal("35")
    assert quote.applied_rules == ("Buses",)
    assert quote.plate_number == "XYZ 987"
