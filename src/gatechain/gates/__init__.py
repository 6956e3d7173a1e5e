"""Gate definitions, catalogue, kind handlers and the evaluator."""
