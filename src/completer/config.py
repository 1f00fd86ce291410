"""Default configuration settings for the completer."""

DEFAULT_CONFIG = {
	# Completion daemon process
	"daemon": {
		# Explicit path to the daemon binary (overrides support_dir and PATH lookup)
		"binary": None,
		# File name of the daemon binary
		"binary_name": "sourcekittend",
		# Directory the application ships the daemon in
		"support_dir": None,
		# Loopback port the daemon listens on
		"port": 44876,
		# Output text that signals the daemon is serving requests
		"ready_marker": "[INFO] Monitoring",
		# Output text that signals the daemon failed to start
		"error_marker": "[ERR]",
		# Output characters scanned for a marker before giving up
		"max_buffer_chars": 1024 * 1024,
		# Seconds to wait for a marker (null waits until the daemon exits)
		"startup_timeout": 60.0,
		# Seconds between SIGTERM and SIGKILL
		"terminate_timeout": 5.0,
	},
	# HTTP client talking to the daemon
	"client": {
		"host": "localhost",
		# Seconds before a request is abandoned
		"request_timeout": 10.0,
		# Concurrent requests
		"max_workers": 4,
	},
	# Completion requests for unsaved buffers
	"completion": {
		# Suffix of the temporary file the buffer is written to
		"temp_suffix": ".swift",
	},
	# Diagnostics
	"debug": {
		# Entries kept by the communication log
		"log_size": 200,
	},
}
