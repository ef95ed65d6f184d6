"""
Fleet Cost & Mileage Accounting Engine

Keeps weekly cost breakdowns, cost-per-mile, fleet mileage, fuel/MPG
attribution and load profitability consistent whenever a Truck, Load or
FuelPurchase changes.
"""

__version__ = "1.0.0"
