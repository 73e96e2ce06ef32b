"""Creator token payment settlement."""
