"""Host adapters for the manuscript engine: a Flask JSON app (web) and an argparse CLI (__main__)."""
