"""clockin package.

Attendance tracking for arbitrary target entities (members, employees,
students, ...). Organized by feature modules (attendance, sessions, stats,
analytics, ...) with thin Flask controllers on top of service/repository
layers.
"""
