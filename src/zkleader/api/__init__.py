"""HTTP control surface for zkleader."""
