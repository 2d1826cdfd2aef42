"""
Trust distribution modelling.

Compares how much personal tax the household pays under different splits
of the trust's distributable income between beneficiaries.
"""

from dataclasses import dataclass, field
from typing import Optional

from famfin.rules.tax import calculate_income_tax


@dataclass(frozen=True)
class BeneficiaryIncome:
    """A beneficiary and their income from outside the trust."""

    key: str
    name: str
    other_income: float = 0.0


@dataclass(frozen=True)
class DistributionScenario:
    """Named split: beneficiary key -> percentage of distributable income."""

    name: str
    allocations: dict[str, float]


@dataclass
class BeneficiaryOutcome:
    key: str
    name: str
    percentage: float
    distribution: float
    franking_credits: float
    taxable_income: float
    tax: float


@dataclass
class ScenarioResult:
    name: str
    beneficiaries: list[BeneficiaryOutcome] = field(default_factory=list)
    total_tax: float = 0.0


@dataclass
class DistributionModel:
    scenarios: list[ScenarioResult]
    best_scenario: Optional[str]


def _validate(scenario: DistributionScenario, known: set[str]) -> None:
    unknown = set(scenario.allocations) - known
    if unknown:
        raise ValueError(f"Scenario '{scenario.name}' references unknown beneficiaries: {sorted(unknown)}")
    if any(pct < 0 for pct in scenario.allocations.values()):
        raise ValueError(f"Scenario '{scenario.name}' has a negative allocation")
    total = sum(scenario.allocations.values())
    if abs(total - 100) > 0.01:
        raise ValueError(f"Scenario '{scenario.name}' allocations total {total:g}%, expected 100%")


def model_distribution(
    distributable_income: float,
    franking_credits: float,
    beneficiaries: list[BeneficiaryIncome],
    scenarios: list[DistributionScenario],
) -> DistributionModel:
    """
    Model the household tax under each distribution scenario.

    Franking credits follow each beneficiary's share. A beneficiary's tax is
    income tax on (other income + share + credits) less the credits, floored
    at zero.

    Raises:
        ValueError: If a scenario does not allocate exactly 100% across
            known beneficiaries
    """
    known = {b.key for b in beneficiaries}
    results: list[ScenarioResult] = []

    for scenario in scenarios:
        _validate(scenario, known)
        result = ScenarioResult(name=scenario.name)

        for beneficiary in beneficiaries:
            pct = scenario.allocations.get(beneficiary.key, 0.0)
            share = distributable_income * pct / 100
            credits = franking_credits * pct / 100
            taxable = beneficiary.other_income + share + credits
            tax = max(0.0, calculate_income_tax(taxable) - credits)

            result.beneficiaries.append(
                BeneficiaryOutcome(
                    key=beneficiary.key,
                    name=beneficiary.name,
                    percentage=pct,
                    distribution=round(share, 2),
                    franking_credits=round(credits, 2),
                    taxable_income=round(taxable, 2),
                    tax=round(tax, 2),
                )
            )
            result.total_tax += tax

        result.total_tax = round(result.total_tax, 2)
        results.append(result)

    best = min(results, key=lambda r: r.total_tax).name if results else None
    return DistributionModel(scenarios=results, best_scenario=best)
