# Domain services: intake, AI analysis, estimates, payments, storage, email
