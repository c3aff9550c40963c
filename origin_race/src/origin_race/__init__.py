"""Pick the fastest origin per request from a cached probe race."""
