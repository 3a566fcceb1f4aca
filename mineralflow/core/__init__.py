# Canonical domain model, status machines and codecs
