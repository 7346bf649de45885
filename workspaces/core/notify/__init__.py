"""Owner notifications: reminder scheduling, templates and mail delivery."""
