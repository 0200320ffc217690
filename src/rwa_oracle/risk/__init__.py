"""Risk windows, assessments and leverage recommendations."""
