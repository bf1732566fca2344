about_html = """<h2>CapacityTester</h2>

        <p>Detects fake and failing USB drives and memory cards by filling the
        volume with test data and reading it back.</p>

        <p><b>How it works:</b></p>
        <ul>
        <li>Initialization: test files are created across the free space and a
        quick test checks the first and last bytes of every file</li>
        <li>Write: every block of every file is written with a random test pattern</li>
        <li>Verify: every block is read back and compared</li>
        </ul>

        <p>Each file and block carries its own id, so a device that silently
        wraps writes around its real capacity is detected. When the test fails,
        the offset of the first bad byte is reported. Everything before that
        offset can be considered usable.</p>

        <p><b>Notes:</b></p>
        <ul>
        <li>The volume should be empty and span the entire device</li>
        <li>Test files are removed after the test</li>
        <li>Leftover test files from a crashed run must be deleted before a new test</li>
        </ul>

        <p align="center"><small>© 2026 Stephen P Smith | MIT License</small></p>
        """
