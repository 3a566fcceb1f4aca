# Resource cache and collection registry
