"""HTML meta tag parsing, and fetching and caching of Open Graph tags from an origin."""