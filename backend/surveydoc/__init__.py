"""Survey program assembly from docx templates and work orders."""
