from dimflow.analysis.cost_calculator import CostCalculator, load_pricing

__all__ = ["CostCalculator", "load_pricing"]
