"""
JLPT exam module.

Test composition rules, stratified question sampling and the attempt
lifecycle behind placement and lesson-review sessions.
"""
