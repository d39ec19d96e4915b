"""IP-to-ASN lookup messages, prefix cache, client, mock service and ASN/country checkers."""