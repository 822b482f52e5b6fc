"""Revenue-based business context for strategic simulations.

Simulations whose intent reads as strategic or financial get an annual
recurring revenue (ARR) input, a budget share input and a block of helper
bindings prepended to their formula, so authors can size investments
relative to the company without redefining the same inputs every time.
"""

import textwrap
from dataclasses import dataclass, replace

import structlog

from decision_outcomes.model.parameters import NumberParameter, ParameterGroup
from decision_outcomes.model.simulation_model import SimulationModel

logger = structlog.get_logger()

ARR_KEY = "annualRecurringRevenue"
BUDGET_KEY = "budgetPercent"
DEFAULT_BUDGET_PERCENT = 10

STRATEGIC_KEYWORDS = (
    "roi", "investment", "cost", "benefit", "revenue", "profit", "budget",
    "runway", "burn", "hiring", "scaling", "strategy", "payback", "npv",
)

HELPER_FUNCTIONS = '''
def calculateROI(investment, returns, timeframe=1):
    if investment <= 0:
        return 0
    return (returns - investment) / investment * 100 / timeframe


def calculatePaybackPeriod(investment, monthlyReturns):
    if monthlyReturns <= 0:
        return 999
    return investment / monthlyReturns


def calculateRunway(currentCash, monthlyBurnRate):
    if monthlyBurnRate <= 0:
        return 999
    return currentCash / monthlyBurnRate


def calculateNPV(cashFlows, discountRate):
    npv = 0
    year = 0
    for cashFlow in cashFlows:
        npv += cashFlow / pow(1 + discountRate, year)
        year += 1
    return npv


def calculateCAC(marketingSpend, customersAcquired):
    if customersAcquired <= 0:
        return 0
    return marketingSpend / customersAcquired
'''


@dataclass(frozen=True)
class BusinessContext:
    """Budget figures derived from ARR."""

    arr_budget: float
    monthly_budget: float
    quarterly_budget: float


class BusinessContextInjector:
    """Decides when a simulation needs business context and applies it."""

    def __init__(self, keywords: tuple[str, ...] = STRATEGIC_KEYWORDS):
        self.keywords = keywords

    def has_arr_parameter(self, parameter_keys: list[str]) -> bool:
        return ARR_KEY in parameter_keys

    def should_inject(self, model: SimulationModel) -> bool:
        """Explicit opt-in, or a strategic keyword anywhere in the model's text."""
        if model.business_context is True:
            return True

        text = " ".join(
            [model.name, model.description, model.category, *model.tags, model.logic or ""]
        ).lower()
        return any(keyword in text for keyword in self.keywords)

    def arr_parameter(self, category: str = "Strategic Investment") -> NumberParameter:
        return NumberParameter(
            key=ARR_KEY,
            label="Annual Recurring Revenue (ARR)",
            default=5_000_000,
            min=100_000,
            max=1_000_000_000,
            step=50_000,
            description=f"Company's annual recurring revenue for {category} investment planning",
        )

    def budget_parameter(self) -> NumberParameter:
        return NumberParameter(
            key=BUDGET_KEY,
            label="Budget Allocation (% of ARR)",
            default=DEFAULT_BUDGET_PERCENT,
            min=1,
            max=50,
            step=0.5,
            description="Budget as percentage of ARR for this strategic analysis",
        )

    def parameter_group(self) -> ParameterGroup:
        return ParameterGroup(
            name="Business Context",
            parameters=(ARR_KEY, BUDGET_KEY),
            description="Company financial context for strategic decision-making",
        )

    def injection_code(self, parameter_keys: list[str]) -> str:
        """Formula text binding budget figures and helper functions.

        Without an ARR parameter there is nothing to derive and only a comment
        is returned.
        """
        if not self.has_arr_parameter(parameter_keys):
            return "# No business context injection - ARR not provided\n"

        if BUDGET_KEY in parameter_keys:
            budget_share = f"({BUDGET_KEY} or {DEFAULT_BUDGET_PERCENT})"
        else:
            budget_share = str(DEFAULT_BUDGET_PERCENT)

        bindings = (
            "# Business context\n"
            f"arrBudget = {ARR_KEY} * {budget_share} / 100\n"
            "monthlyBudget = arrBudget / 12\n"
            "quarterlyBudget = arrBudget / 4\n"
        )
        return bindings + HELPER_FUNCTIONS

    def inject_logic(self, logic: str, parameter_keys: list[str]) -> str:
        return (
            self.injection_code(parameter_keys)
            + "\n# Simulation logic\n"
            + textwrap.dedent(logic).strip()
            + "\n"
        )

    def enhance(self, model: SimulationModel) -> SimulationModel:
        """Return the model with business context applied when it is needed."""
        if model.logic is None or not self.should_inject(model):
            return model

        keys = model.parameter_keys
        if self.has_arr_parameter(keys):
            logger.debug("business_context_logic_only", simulation=model.id)
            return replace(model, logic=self.inject_logic(model.logic, keys))

        injected = [self.arr_parameter("Strategic Analysis")]
        if BUDGET_KEY not in keys:
            injected.append(self.budget_parameter())
        parameters = injected + list(model.parameters)
        all_keys = [p.key for p in parameters]

        logger.debug("business_context_injected", simulation=model.id)
        return replace(
            model,
            parameters=tuple(parameters),
            groups=(self.parameter_group(), *model.groups),
            logic=self.inject_logic(model.logic, all_keys),
        )

    def create_business_context(
        self, arr: float, budget_percent: float = DEFAULT_BUDGET_PERCENT
    ) -> BusinessContext:
        arr_budget = arr * budget_percent / 100
        return BusinessContext(
            arr_budget=arr_budget,
            monthly_budget=arr_budget / 12,
            quarterly_budget=arr_budget / 4,
        )
