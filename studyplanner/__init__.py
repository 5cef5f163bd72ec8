"""
StudyPlanner – subjects, tasks, exams and lecture checklists on a calendar.
"""
