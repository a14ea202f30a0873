"""Training job boundary for the training app.

This package holds the contract the queue processor trains against
(corpus loading, samples, outcomes) and the default scikit-learn job that
fulfils it.
"""
