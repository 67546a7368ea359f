# Shared values for the test suite.

PAGE_URL = "https://example.com/articles/post.html"
PAGE_ORIGIN = "https://example.com/"

# 1x1 transparent GIF, far below the embedded-size floor
TINY_GIF = "data:image/gif;base64,R0lGODlhAQABAIAAAAAAAP///yH5BAEAAAAALAAAAAABAAEAAAIBRAA7"

FORMULA_PARAGRAPH = "Cost is $5 and $x+y=5$ inline"
