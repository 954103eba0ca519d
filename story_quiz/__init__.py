"""Story quiz - grounded three-option answer sets for children's story questions."""
