"""Monthly budget alerts and recurring-expense projection."""
