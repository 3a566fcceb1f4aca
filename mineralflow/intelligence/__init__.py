# Normalization, derived metrics and alerting
