"""Terminal output for Recap."""
