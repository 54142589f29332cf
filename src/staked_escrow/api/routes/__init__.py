"""REST route modules, one router per resource."""
