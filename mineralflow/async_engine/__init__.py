# Background polling
