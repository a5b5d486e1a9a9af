import io
import logging

from twisted.trial.unittest import SynchronousTestCase

from pyesl import log
from pyesl.log import LogLevel

DATED_LINE = r"^\d{4}-\d{2}-\d{2} \d{2}:\d{2}:\d{2} \[ERROR\] "


class SetupLoggingTests(SynchronousTestCase):

    def setUp(self):
        self.stream = io.StringIO()
        self.logger = logging.getLogger("pyesl.protocol")
        self.addCleanup(self.reset)

    def reset(self):
        root = logging.getLogger(log.LOGGER_NAME)
        if log._handler is not None:
            root.removeHandler(log._handler)
            log._handler.close()
            log._handler = None
        root.setLevel(logging.NOTSET)

    def test_format(self):
        log.setupLogging(LogLevel.ERROR, stream=self.stream)
        self.logger.error("boom %d", 1)
        self.assertRegex(self.stream.getvalue(), r"^\[ERROR\] \[test_log\.py:\d+\] test_format\(\): boom 1\n$")

    def test_levelFilters(self):
        log.setupLogging(LogLevel.ERROR, stream=self.stream)
        self.logger.warning("hidden")
        self.logger.error("shown")
        self.assertNotIn("hidden", self.stream.getvalue())
        self.assertIn("shown", self.stream.getvalue())

    def test_fatalOnlyByDefault(self):
        log.setupLogging(stream=self.stream)
        self.logger.error("hidden")
        self.assertEqual(self.stream.getvalue(), "")

    def test_warnShowsInfo(self):
        log.setupLogging(LogLevel.WARN, stream=self.stream)
        self.logger.info("connected")
        self.logger.debug("Line In")
        self.assertIn("connected", self.stream.getvalue())
        self.assertNotIn("Line In", self.stream.getvalue())

    def test_debug(self):
        log.setupLogging(LogLevel.DEBUG, stream=self.stream)
        self.logger.debug("Line In")
        self.assertIn("[DEBUG]", self.stream.getvalue())

    def test_dateTime(self):
        log.setupLogging(LogLevel.ERROR, dateTime=True, stream=self.stream)
        self.logger.error("boom")
        self.assertRegex(self.stream.getvalue(), DATED_LINE)

    def test_enableDateTime(self):
        log.setupLogging(LogLevel.ERROR, stream=self.stream)
        log.enableDateTime()
        self.logger.error("boom")
        self.assertRegex(self.stream.getvalue(), DATED_LINE)

    def test_enableDebug(self):
        log.setupLogging(stream=self.stream)
        log.enableDebug()
        self.logger.debug("Line In")
        self.assertIn("Debug mode enabled", self.stream.getvalue())
        self.assertIn("Line In", self.stream.getvalue())

    def test_replacesPreviousSetup(self):
        first = io.StringIO()
        log.setupLogging(LogLevel.ERROR, stream=first)
        log.setupLogging(LogLevel.ERROR, stream=self.stream)
        self.logger.error("boom")
        self.assertEqual(first.getvalue(), "")
        self.assertIn("boom", self.stream.getvalue())

    def test_filename(self):
        path = self.mktemp()
        log.setupLogging(LogLevel.INFO, filename=path)
        self.logger.info("to file")
        with open(path) as f:
            self.assertIn("to file", f.read())

    def test_fatal(self):
        log.setupLogging(stream=self.stream)
        self.assertRaises(SystemExit, log.fatal, "cannot continue: %s", "no listener")
        self.assertIn("[FATAL]", self.stream.getvalue())
        self.assertIn("cannot continue: no listener", self.stream.getvalue())
